from rest_framework import serializers


class StartSessionSerializer(serializers.Serializer):
    consent = serializers.BooleanField()

    def validate_consent(self, value):
        if not value:
            raise serializers.ValidationError("Consent is required to start the assessment.")
        return value


class AnswerSerializer(serializers.Serializer):
    question_id = serializers.CharField(max_length=64)
    option = serializers.IntegerField()


class NavigateSerializer(serializers.Serializer):
    DIRECTION_CHOICES = ["next", "previous"]

    index = serializers.IntegerField(required=False)
    direction = serializers.ChoiceField(choices=DIRECTION_CHOICES, required=False)

    def validate(self, attrs):
        if "index" not in attrs and "direction" not in attrs:
            raise serializers.ValidationError("Provide an index or a direction.")
        return attrs


class FinishSerializer(serializers.Serializer):
    confirm = serializers.BooleanField(default=False)
    scenario_response = serializers.CharField(
        required=False, allow_blank=True, default="", max_length=20000
    )
