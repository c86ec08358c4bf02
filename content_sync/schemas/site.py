"""Site and API key schemas."""
from pydantic import BaseModel


class SiteResponse(BaseModel):
    id: int
    name: str
    url: str
    upload_url: str
    is_main: bool
    is_central: bool
    sync_enabled: bool
    approval_required: bool
    delete_on_subsite: bool
    post_types: list[str] | None = None
    taxonomies: list[str] | None = None

    model_config = {"from_attributes": True}


class ApiKeyResponse(BaseModel):
    site_id: int
    api_key: str
    created: bool
