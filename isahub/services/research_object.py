"""Research Object bundle export.

Bundles follow the RO Bundle layout: an uncompressed ``mimetype`` entry
first, a ``.ro/manifest.json`` describing the aggregated resources, and
the JSON-API metadata of each resource under ``metadata/``. The
investigation is aggregated together with each of its studies.
"""

from __future__ import annotations

import io
import json
import zipfile
from typing import Any

from isahub.core.time import utcnow
from isahub.db.models import Investigation, User
from isahub.serializers import JSONAPI_MEDIA_TYPE, InvestigationSerializer, StudySerializer

RO_BUNDLE_MEDIA_TYPE = "application/vnd.wf4ever.robundle+zip"
RO_BUNDLE_CONTEXT = "https://w3id.org/bundle/context"


def bundle_filename(investigation: Investigation) -> str:
    return f"investigation-{investigation.id}.ro.zip"


def _metadata_entries(investigation: Investigation, actor: User | None) -> list[tuple[str, dict[str, Any]]]:
    entries = [
        (
            f"/metadata/investigation-{investigation.id}.json",
            InvestigationSerializer(investigation, actor).serialize(),
        )
    ]
    for study in investigation.studies:
        entries.append((f"/metadata/study-{study.id}.json", StudySerializer(study, actor).serialize()))
    return entries


def _manifest(paths: list[str], actor: User | None) -> dict[str, Any]:
    investigation_path = paths[0]
    manifest: dict[str, Any] = {
        "@context": [RO_BUNDLE_CONTEXT],
        "id": "/",
        "manifest": ["manifest.json"],
        "createdOn": utcnow().isoformat() + "Z",
        "aggregates": [{"uri": path, "mediatype": JSONAPI_MEDIA_TYPE} for path in paths],
        "annotations": [{"about": "/", "content": investigation_path}],
    }
    if actor is not None:
        manifest["createdBy"] = {"name": actor.username}
    return manifest


def build_research_object(investigation: Investigation, actor: User | None = None) -> bytes:
    """Build the RO bundle for an investigation and return the zip bytes."""
    entries = _metadata_entries(investigation, actor)

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as bundle:
        bundle.writestr(
            zipfile.ZipInfo("mimetype"), RO_BUNDLE_MEDIA_TYPE, compress_type=zipfile.ZIP_STORED
        )
        bundle.writestr(
            ".ro/manifest.json",
            json.dumps(_manifest([path for path, _ in entries], actor), indent=2),
            compress_type=zipfile.ZIP_DEFLATED,
        )
        for path, document in entries:
            bundle.writestr(path.lstrip("/"), json.dumps(document, indent=2), compress_type=zipfile.ZIP_DEFLATED)
    return buffer.getvalue()
