from pydantic import BaseModel, Field, field_validator, model_validator


class GenerationOptions(BaseModel):
    model: str
    temperature: float | None = None
    max_tokens: int | None = None


class GenerateTextRequest(BaseModel):
    prompt: str
    temperature: float | None = Field(default=None, ge=0.0, le=1.0)
    max_tokens: int | None = Field(default=None, ge=1, le=4096)
    model: str | None = None
    streaming: bool = False
    userId: int | None = None

    @field_validator("prompt")
    @classmethod
    def prompt_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("prompt must be a non-empty string")
        return v


class AnalyzeImageRequest(BaseModel):
    imageUrl: str | None = None
    imageBase64: str | None = None
    prompt: str = "Describe this image in detail."
    model: str | None = None
    streaming: bool = False
    userId: int | None = None

    @model_validator(mode="after")
    def require_image(self) -> "AnalyzeImageRequest":
        if not (self.imageUrl or self.imageBase64):
            raise ValueError("imageUrl or imageBase64 is required")
        return self

    def image_source(self) -> str:
        """URL forwarded to the provider; base64 payloads become data URLs."""
        if self.imageUrl:
            return self.imageUrl
        data = self.imageBase64 or ""
        if data.startswith("data:"):
            return data
        return f"data:image/jpeg;base64,{data}"
