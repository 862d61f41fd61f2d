"""
Schemas for business card wallet passes
"""
from pydantic import BaseModel, Field
from typing import Optional


class CardRecord(BaseModel):
    """Business card fields as collected by the card builder UI"""
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    email: Optional[str] = None
    phone: Optional[str] = None
    company_name: Optional[str] = Field(default=None, alias="companyName")
    job_title: Optional[str] = Field(default=None, alias="jobTitle")
    website: Optional[str] = None
    card_url: str = Field(alias="cardUrl")  # canonical public card page, absolute URL
    qr_payload: Optional[str] = Field(default=None, alias="qrPayload")
    logo_url: Optional[str] = Field(default=None, alias="logoUrl")
    profile_photo_url: Optional[str] = Field(default=None, alias="profilePhotoUrl")

    class Config:
        populate_by_name = True
        frozen = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name.strip()} {self.last_name.strip()}".strip()


class WalletPassConfigStatus(BaseModel):
    """Whether pass signing is configured, and what is missing if not"""
    configured: bool
    missing: list = []
