from rest_framework import serializers

from .models import Appointment, AppointmentService, Customer, Service, Staff


class CustomerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = ["id", "name", "email", "phone"]


class ServiceSerializer(serializers.ModelSerializer):
    class Meta:
        model = Service
        fields = ["id", "salon", "name", "description", "duration_minutes", "buffer_minutes", "price"]


class StaffSerializer(serializers.ModelSerializer):
    class Meta:
        model = Staff
        fields = ["id", "salon", "name", "role", "services"]


class AppointmentServiceSerializer(serializers.ModelSerializer):
    class Meta:
        model = AppointmentService
        fields = ["service", "service_name", "duration_minutes", "buffer_minutes", "price"]


class AppointmentSerializer(serializers.ModelSerializer):
    services = AppointmentServiceSerializer(source="line_items", many=True, read_only=True)

    class Meta:
        model = Appointment
        fields = [
            "id",
            "salon",
            "staff",
            "customer",
            "start_time",
            "end_time",
            "duration_minutes",
            "status",
            "reservation_expires_at",
            "confirmed_at",
            "cancelled_at",
            "cancellation_reason",
            "completed_at",
            "no_show_at",
            "notes",
            "services",
            "created_at",
        ]
        read_only_fields = fields


def _parse_id_list(value):
    """Accept [1, 2], "1,2" or "1" and return [1, 2]."""
    if value in (None, "", []):
        return []
    items = value.split(",") if isinstance(value, str) else value
    try:
        return [int(str(item).strip()) for item in items if str(item).strip()]
    except ValueError:
        raise serializers.ValidationError("Use a comma-separated list of service ids.") from None


class IdListField(serializers.Field):
    def to_internal_value(self, data):
        return _parse_id_list(data)

    def to_representation(self, value):
        return value


class ReservationRequestSerializer(serializers.Serializer):
    """
    Input for POST /api/appointments/.

    start_time stays a string: the coordinator reads naive values in the
    salon's own timezone rather than the server's.
    """
    salon = serializers.IntegerField()
    staff = serializers.IntegerField()
    customer = serializers.IntegerField()
    start_time = serializers.CharField()
    duration_minutes = serializers.IntegerField(required=False, min_value=1)
    services = IdListField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    confirm = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        if not attrs.get("duration_minutes") and not attrs.get("services"):
            raise serializers.ValidationError("Provide duration_minutes or at least one service.")
        return attrs


class AvailabilityQuerySerializer(serializers.Serializer):
    salon = serializers.IntegerField()
    date = serializers.DateField(required=False)
    start = serializers.DateField(required=False)
    end = serializers.DateField(required=False)
    duration = serializers.IntegerField(required=False, min_value=1)
    services = IdListField(required=False)
    staff = serializers.IntegerField(required=False)

    def validate(self, attrs):
        if not attrs.get("duration") and not attrs.get("services"):
            raise serializers.ValidationError("Provide 'duration' or 'services'.")
        return attrs


class RescheduleSerializer(serializers.Serializer):
    start_time = serializers.CharField()
    staff = serializers.IntegerField(required=False)


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    email = serializers.EmailField(required=False)
