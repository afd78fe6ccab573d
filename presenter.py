"""
Read-only views of the portfolio document for visitors.
"""
from typing import Any, Dict, List, Optional

from media import drive_download_url, drive_preview_url
from schemas import CONTACT_KEYS, PortfolioDocument

EMAIL_KEYS = ("personalEmail", "orgEmail")

ADMIN_MODE = "admin"
PUBLIC_MODE = "public"


def resolve_mode(path: str, admin_path: str) -> str:
    """
    Exact match on the hidden admin path. This only picks which UI to show;
    access is decided by the session check on each admin route.
    """
    return ADMIN_MODE if path == admin_path else PUBLIC_MODE


def title_parts(title: str) -> List[str]:
    return [part.strip() for part in (title or "").split("|")][:3]


def contact_href(key: str, value: str) -> str:
    if key in EMAIL_KEYS:
        return f"mailto:{value}"
    if key == "phone":
        return f"tel:{value}"
    return value


def resume_links(resume: Dict[str, Any]) -> Dict[str, str]:
    file_id = resume.get("driveFileId", "")
    return {"previewUrl": drive_preview_url(file_id), "downloadUrl": drive_download_url(file_id)}


def public_view(document: Dict[str, Any]) -> Dict[str, Any]:
    """
    What the landing page renders. Missing sections or fields in older
    documents fall back to model defaults; hidden entries are dropped.
    """
    doc = PortfolioDocument.model_validate(document).dump()

    hero: Optional[Dict[str, Any]] = None
    if doc["hero"]["visible"]:
        hero = {**doc["hero"], "titleParts": title_parts(doc["hero"]["title"])}

    about = doc["about"] if doc["about"]["visible"] else None

    show_resume = doc["settings"]["showResume"]
    resumes = []
    if show_resume:
        resumes = [{**r, **resume_links(r)} for r in doc["resumes"] if r["visible"]]

    contact = []
    for key in CONTACT_KEYS:
        entry = doc["contact"][key]
        if entry["visible"] and entry["value"]:
            contact.append({"key": key, "value": entry["value"], "href": contact_href(key, entry["value"])})

    return {
        "hero": hero,
        "about": about,
        "projects": [p for p in doc["projects"] if p["visible"]],
        "showResume": show_resume,
        "resumes": resumes,
        "contact": contact,
    }
