"""JSON-API serializers."""

from isahub.serializers.base import JSONAPI_MEDIA_TYPE, SimpleBaseSerializer
from isahub.serializers.investigation import InvestigationSerializer
from isahub.serializers.study import StudySerializer

__all__ = ["JSONAPI_MEDIA_TYPE", "SimpleBaseSerializer", "InvestigationSerializer", "StudySerializer"]
