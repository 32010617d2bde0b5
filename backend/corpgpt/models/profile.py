from pydantic import BaseModel, field_validator

MAX_IMAGE_BYTES = 5 * 1024 * 1024


class Profile(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    name: str | None = None
    email: str | None = None
    profile_image: str | None = None


class ProfileUpdate(BaseModel):
    first_name: str
    last_name: str

    @field_validator("first_name", "last_name")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Please enter your first and last name.")
        return value

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class ProfileImageUpdate(BaseModel):
    # Base64 data URL as produced by the browser's FileReader
    image: str

    @field_validator("image")
    @classmethod
    def is_image_data_url(cls, value: str) -> str:
        if not value.startswith("data:image/"):
            raise ValueError("Please select an image file (JPEG, PNG, GIF)")
        # Four base64 characters carry three bytes
        if len(value.split(",", 1)[-1]) * 3 // 4 > MAX_IMAGE_BYTES:
            raise ValueError("File size must be less than 5MB")
        return value


class ProfileResponse(BaseModel):
    profile: Profile
    needs_profile: bool
