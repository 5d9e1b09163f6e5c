from rest_framework import serializers

from .models import OpeningHours, Table


class TableSerializer(serializers.ModelSerializer):
    class Meta:
        model = Table
        fields = ["id", "number", "capacity", "is_active"]
        read_only_fields = ["id", "is_active"]

    def validate_capacity(self, value):
        if value < 1:
            raise serializers.ValidationError("A table seats at least one guest.")
        return value


class TableCapacitySerializer(serializers.Serializer):
    capacity = serializers.IntegerField(min_value=1)


class OpeningHoursSerializer(serializers.ModelSerializer):
    day_name = serializers.CharField(read_only=True)
    is_closed = serializers.BooleanField(read_only=True)

    class Meta:
        model = OpeningHours
        fields = ["date", "day_name", "open_time", "close_time", "occasion", "is_closed"]

    def validate(self, attrs):
        open_time = attrs.get("open_time")
        close_time = attrs.get("close_time")
        if (open_time is None) != (close_time is None):
            raise serializers.ValidationError(
                "Give both opening and closing time, or neither to close the day."
            )
        if open_time is not None and close_time <= open_time:
            raise serializers.ValidationError({"close_time": "Closing time must be after opening time."})
        return attrs


class OpeningHoursUpdateSerializer(OpeningHoursSerializer):
    class Meta(OpeningHoursSerializer.Meta):
        read_only_fields = ["date"]
