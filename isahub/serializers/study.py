"""Study serializer."""

from isahub.serializers.base import SimpleBaseSerializer


class StudySerializer(SimpleBaseSerializer):
    type_name = "studies"
    attributes = ("title", "description")
    relationships = {
        "investigation": ("investigations", "investigation"),
    }
