"""Investigation serializer."""

from __future__ import annotations

from typing import Any

from isahub.auth.policy import AccessTier, Permission, allowed_actions
from isahub.serializers.base import SimpleBaseSerializer


class InvestigationSerializer(SimpleBaseSerializer):
    type_name = "investigations"
    attributes = ("title", "description", "other_creators")
    relationships = {
        "submitter": ("people", "contributor"),
        "creators": ("people", "creators"),
        "projects": ("projects", "projects"),
        "studies": ("studies", "studies"),
    }

    def serialize_attributes(self) -> dict[str, Any]:
        attrs = super().serialize_attributes()
        policy = self.object.policy
        attrs["policy"] = {
            "access": AccessTier(policy.access_type).name.lower(),
            "permissions": [
                {
                    "resource": {"type": grant.contributor_type, "id": grant.contributor_id},
                    "access": AccessTier(grant.access_type).name.lower(),
                }
                for grant in policy.permissions
            ],
        }
        return attrs

    def resource_object(self) -> dict[str, Any]:
        resource = super().resource_object()
        actions = allowed_actions(self.actor, self.object)
        # Deletion is also blocked while studies exist.
        if self.object.studies and Permission.DELETE.value in actions:
            actions.remove(Permission.DELETE.value)
        resource["meta"]["actions"] = actions
        return resource
