from fastapi import APIRouter, Query

from dependencies.services import PageRepository
from schemas.api import ApiResponse
from schemas.pages import DeployRequest, DeployResult, PageSource, SiteMap


router = APIRouter(prefix="/pages", tags=["pages"])


@router.get("", response_model=ApiResponse[SiteMap])
async def list_pages(repository: PageRepository) -> ApiResponse[SiteMap]:
    """List every HTML file published on the site branch."""
    site_map = await repository.list_pages()
    return ApiResponse(
        data=site_map, message=f"Found {len(site_map.files)} pages"
    )


@router.get("/source", response_model=ApiResponse[PageSource])
async def get_page_source(
    repository: PageRepository,
    path: str = Query(default="/", max_length=512),
) -> ApiResponse[PageSource]:
    """Current HTML of the page served at `path`, for editing."""
    page = await repository.read_page(path)
    return ApiResponse(data=page, message="Page source retrieved")


@router.post("/deploy", response_model=ApiResponse[DeployResult])
async def deploy_page(
    payload: DeployRequest, repository: PageRepository
) -> ApiResponse[DeployResult]:
    """Commit a generated page to the site repository."""
    result = await repository.deploy_page(payload.html, payload.path, payload.filename)
    return ApiResponse(data=result, message=result.message)
