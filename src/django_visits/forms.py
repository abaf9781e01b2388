"""Django Visits forms.

Validate JSON payloads at the HTTP boundary before any engine call.
"""

from django import forms
from django.contrib.auth import get_user_model
from django.utils.translation import gettext_lazy as _

from .enums import ItemStatus, PaymentMethod, ServiceKind, VisitStatus


class StrictDecimalField(forms.DecimalField):
    """DecimalField that refuses JSON floats; amounts travel as strings or integers."""

    def to_python(self, value):
        if isinstance(value, float):
            raise forms.ValidationError(_("Send amounts as decimal strings, not floats."), code="float")
        return super().to_python(value)


def _amount_field(**kwargs):
    return StrictDecimalField(max_digits=12, decimal_places=2, **kwargs)


def _active_users():
    return get_user_model().objects.filter(is_active=True)


class CreateVisitForm(forms.Form):
    patient_id = forms.CharField(max_length=64)
    entry_fee = _amount_field(required=False, min_value=0)
    notes = forms.CharField(required=False)


class TransitionForm(forms.Form):
    to_status = forms.ChoiceField(choices=VisitStatus.choices)
    expected_version = forms.IntegerField(required=False, min_value=1)
    reason = forms.CharField(required=False)


class CancelForm(forms.Form):
    reason = forms.CharField(required=False)
    expected_version = forms.IntegerField(required=False, min_value=1)


class TriageForm(forms.Form):
    blood_pressure = forms.CharField(required=False, max_length=16)
    temperature = StrictDecimalField(required=False, max_digits=4, decimal_places=1, min_value=0)
    heart_rate = forms.IntegerField(required=False, min_value=0)
    respiratory_rate = forms.IntegerField(required=False, min_value=0)
    oxygen_saturation = forms.IntegerField(required=False, min_value=0, max_value=100)
    weight_kg = StrictDecimalField(required=False, max_digits=5, decimal_places=2, min_value=0)
    height_cm = StrictDecimalField(required=False, max_digits=5, decimal_places=1, min_value=0)
    chief_complaint = forms.CharField(required=False)


class AssignDoctorForm(forms.Form):
    doctor = forms.ModelChoiceField(queryset=_active_users())
    consultation_fee = _amount_field(required=False, min_value=0)


class AssignItemForm(forms.Form):
    nurse = forms.ModelChoiceField(queryset=_active_users())


class ServiceRequestForm(forms.Form):
    """One entry of BatchOrderForm.items."""

    service_reference_id = forms.CharField(max_length=64)
    kind = forms.ChoiceField(choices=ServiceKind.choices)
    unit_price = _amount_field(min_value=0)
    quantity = forms.IntegerField(required=False, min_value=1)
    display_name = forms.CharField(required=False, max_length=255)
    instructions = forms.CharField(required=False)

    def clean_quantity(self):
        return self.cleaned_data.get("quantity") or 1


class BatchOrderForm(forms.Form):
    visit_id = forms.UUIDField()
    instructions = forms.CharField(required=False)

    def __init__(self, data=None, *args, **kwargs):
        super().__init__(data, *args, **kwargs)
        raw_items = (data or {}).get("items")
        self.item_forms = [
            ServiceRequestForm(item if isinstance(item, dict) else {})
            for item in (raw_items if isinstance(raw_items, list) else [])
        ]

    def clean(self):
        cleaned_data = super().clean()
        if not self.item_forms:
            self.add_error(None, _("At least one item is required."))
        for index, item_form in enumerate(self.item_forms):
            if not item_form.is_valid():
                for field, errors in item_form.errors.items():
                    self.add_error(None, f"items[{index}].{field}: {' '.join(errors)}")
        return cleaned_data

    @property
    def cleaned_items(self) -> list[dict]:
        return [item_form.cleaned_data for item_form in self.item_forms]


class PaymentForm(forms.Form):
    amount = _amount_field()
    method = forms.ChoiceField(choices=PaymentMethod.choices)
    insurance_reference = forms.CharField(required=False, max_length=128)
    reference = forms.CharField(required=False, max_length=128)
    idempotency_key = forms.CharField(required=False, max_length=128)

    def clean(self):
        cleaned_data = super().clean()
        if cleaned_data.get("method") == PaymentMethod.INSURANCE and not cleaned_data.get("insurance_reference"):
            self.add_error("insurance_reference", _("Insurance payments require an insurance reference."))
        return cleaned_data


class CompleteItemForm(forms.Form):
    result_reference = forms.CharField(required=False, max_length=255)
    outcome = forms.ChoiceField(
        required=False,
        choices=[(ItemStatus.COMPLETED, ItemStatus.COMPLETED.label), (ItemStatus.CANCELLED, ItemStatus.CANCELLED.label)],
    )
    expected_version = forms.IntegerField(required=False, min_value=1)

    def clean_outcome(self):
        return self.cleaned_data.get("outcome") or ItemStatus.COMPLETED
