"""Preview router: builds a link card for the first URL found in the given text."""

import logging

from fastapi import APIRouter, Depends, Query, Request

from linkcard.link_preview import LinkPreview
from linkcard.schemas import PreviewOut

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/preview", tags=["Preview"])


def get_link_preview(request: Request) -> LinkPreview:
    """Pipeline shared by every request; created in the app lifespan."""
    return request.app.state.link_preview


@router.get("", response_model=PreviewOut)
async def preview(
    text: str = Query(..., min_length=1, description="Free text containing a URL"),
    link_preview: LinkPreview = Depends(get_link_preview),
) -> PreviewOut:
    """Return the preview for the first http(s) URL in `text`."""
    result = await link_preview.get_preview(text)
    return PreviewOut.from_preview(result)
