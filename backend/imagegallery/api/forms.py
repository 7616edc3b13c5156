from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from imagegallery.core.errors import ApiError, ErrorCode
from imagegallery.services.images import tags_from_field


class ImageMetadataForm(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = Field(min_length=1, max_length=200)
    tags: str = Field(default="", max_length=2000)

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title must not be blank")
        return value

    def tag_list(self) -> list[str]:
        return tags_from_field(self.tags)


def validate_metadata_form(data: dict[str, Any]) -> ImageMetadataForm:
    try:
        return ImageMetadataForm(**data)
    except ValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        raise ApiError(
            code=ErrorCode.BAD_REQUEST,
            message="Invalid form: " + ", ".join(fields) if fields else "Invalid form",
            status_code=400,
            details={"fields": fields},
        ) from exc


def form_text(form: Any, key: str) -> str | None:
    value = form.get(key)
    return value if isinstance(value, str) else None
