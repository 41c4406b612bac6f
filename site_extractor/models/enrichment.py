"""
Typed enrichment payloads.

The LLM answers with a loose JSON object. It is parsed here, once, into one
variant per page type; unknown keys are dropped and "null"-ish strings are
turned into real None values so nothing untyped reaches the record.
"""
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def _clean_scalar(value: Any) -> Any:
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or stripped.lower() == "null":
            return None
        return stripped
    return value


def _clean_field(value: Any) -> Any:
    if isinstance(value, list):
        cleaned = [_clean_scalar(item) for item in value]
        cleaned = [item for item in cleaned if isinstance(item, str)]
        return cleaned or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, (dict, bool)):
        return None
    return _clean_scalar(value)


class _PayloadBase(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    detected_type: Optional[str] = None
    page_title: Optional[str] = None
    meta_description: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _drop_null_strings(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {
            key: value if key == "kind" else _clean_field(value)
            for key, value in data.items()
        }


class ProductPayload(_PayloadBase):
    kind: Literal["product"] = "product"
    product_name: Optional[str] = None
    price: Optional[str] = None
    currency: Optional[str] = None
    stock_status: Optional[str] = None
    brand: Optional[str] = None
    sku: Optional[str] = None
    features: Optional[List[str]] = None
    categories_from_page: Optional[List[str]] = None
    images: Optional[List[str]] = None
    short_description: Optional[str] = None
    detailed_description: Optional[str] = None


class BlogPayload(_PayloadBase):
    kind: Literal["blog"] = "blog"
    post_title: Optional[str] = None
    author: Optional[str] = None
    publish_date: Optional[str] = None
    summary: Optional[str] = None
    categories_from_page: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    images: Optional[List[str]] = None


class CategoryPayload(_PayloadBase):
    kind: Literal["category"] = "category"
    category_name: Optional[str] = None
    description: Optional[str] = None
    listed_item_urls: Optional[List[str]] = None


class StaticPayload(_PayloadBase):
    kind: Literal["static"] = "static"
    page_purpose: Optional[str] = None


class UnrecognizedPayload(_PayloadBase):
    kind: Literal["unrecognized"] = "unrecognized"


EnrichmentPayload = Annotated[
    Union[ProductPayload, BlogPayload, CategoryPayload, StaticPayload, UnrecognizedPayload],
    Field(discriminator="kind"),
]


# detectedPageType value -> (payload class, nested info key)
PAYLOAD_VARIANTS = {
    "product": (ProductPayload, "productInfo"),
    "blogpost": (BlogPayload, "blogPostInfo"),
    "blog": (BlogPayload, "blogPostInfo"),
    "categorypage": (CategoryPayload, "categoryPageInfo"),
    "category": (CategoryPayload, "categoryPageInfo"),
    "staticpage": (StaticPayload, "staticPageInfo"),
    "homepage": (StaticPayload, "staticPageInfo"),
}


def parse_enrichment_payload(data: Dict[str, Any]) -> EnrichmentPayload:
    """
    Turn the LLM's JSON object into a typed payload.

    The nested "<type>Info" object for the detected type is merged with the
    top-level common fields; every other key is discarded.
    """
    detected = _clean_scalar(data.get("detectedPageType"))
    detected = detected if isinstance(detected, str) else None
    common = {
        "detectedType": detected,
        "pageTitle": data.get("pageTitle"),
        "metaDescription": data.get("metaDescription"),
    }

    variant = PAYLOAD_VARIANTS.get((detected or "").lower())
    if variant is None:
        return UnrecognizedPayload.model_validate(common)

    payload_cls, info_key = variant
    info = data.get(info_key)
    fields = dict(info) if isinstance(info, dict) else {}
    fields.pop("kind", None)
    fields.update(common)
    return payload_cls.model_validate(fields)
