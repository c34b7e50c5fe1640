"""Tests for the per-check-type check_data payloads."""

from datetime import date, time

import pytest

from compliance_engine.checks.payloads import (
    AgeVerificationData,
    EvaluationContext,
    QuantityLimitData,
    TimeRestrictionData,
    build_check_data,
    dump_check_data,
    parse_check_data,
)
from compliance_engine.checks.states import CheckType
from compliance_engine.common.exceptions import ValidationError
from compliance_engine.common.models import utcnow
from compliance_engine.policy.registry import PolicySettings


class TestBuildCheckData:
    def test_thresholds_copied_from_policy(self):
        payload = build_check_data(
            CheckType.QUANTITY_LIMIT,
            PolicySettings(max_thc_mg_per_order=250.0),
            EvaluationContext(),
        )
        assert isinstance(payload, QuantityLimitData)
        assert payload.max_thc_mg == 250.0
        assert payload.max_weight_g == 28.0
        assert payload.total_thc_mg is None

    def test_observations_copied_from_context(self):
        payload = build_check_data(
            CheckType.AGE_VERIFICATION,
            PolicySettings(),
            EvaluationContext(customer_age=30, id_type="passport"),
        )
        assert payload.minimum_age == 21
        assert payload.customer_age == 30
        assert payload.id_type == "passport"

    def test_time_maps_local_time_to_delivery_time(self):
        payload = build_check_data(
            CheckType.TIME_RESTRICTION,
            PolicySettings(),
            EvaluationContext(local_time=time(14, 30), day_of_week="Monday"),
        )
        assert isinstance(payload, TimeRestrictionData)
        assert payload.delivery_time == time(14, 30)
        assert payload.allowed_start == time(9, 0)
        assert len(payload.allowed_days) == 7

    @pytest.mark.parametrize("check_type", list(CheckType))
    def test_every_type_is_tagged(self, check_type):
        payload = build_check_data(check_type, PolicySettings(), EvaluationContext())
        assert payload.check_type == check_type.value


class TestWithObservations:
    def test_missing_observation_keeps_stored_value(self):
        stored = AgeVerificationData(minimum_age=21, customer_age=40)
        refreshed = stored.with_observations(EvaluationContext(id_type="license"))
        assert refreshed.customer_age == 40
        assert refreshed.id_type == "license"

    def test_new_observation_replaces_stored_value(self):
        stored = AgeVerificationData(minimum_age=21, customer_age=40)
        refreshed = stored.with_observations(EvaluationContext(customer_age=19))
        assert refreshed.customer_age == 19
        assert stored.customer_age == 40


class TestParseCheckData:
    def test_stored_payload_round_trips_through_json(self):
        payload = build_check_data(
            CheckType.AGE_VERIFICATION,
            PolicySettings(),
            EvaluationContext(customer_dob=date(2000, 5, 1)),
        )
        raw = dump_check_data(payload)
        assert raw["customer_dob"] == "2000-05-01"
        assert parse_check_data(CheckType.AGE_VERIFICATION, raw) == payload

    def test_untagged_payload_gets_check_type(self):
        payload = parse_check_data(CheckType.CUSTOMER_STATUS, {"is_active": True})
        assert payload.check_type == "customer_status"
        assert payload.is_active is True

    def test_empty_payload(self):
        payload = parse_check_data(CheckType.LICENSED_ZONE, None)
        assert payload.in_licensed_zone is None

    def test_mismatched_tag_rejected(self):
        with pytest.raises(ValidationError, match="tagged"):
            parse_check_data(CheckType.LICENSED_ZONE, {"check_type": "id_on_file"})

    def test_missing_threshold_rejected(self):
        with pytest.raises(ValidationError, match="Malformed"):
            parse_check_data(CheckType.AGE_VERIFICATION, {"customer_age": 30})


class TestEvaluationContext:
    def test_negative_age_rejected(self):
        with pytest.raises(ValueError):
            EvaluationContext(customer_age=-1)

    def test_parses_json_strings(self):
        ctx = EvaluationContext.model_validate(
            {"local_time": "21:15", "as_of": "2026-10-19", "total_thc_mg": "12.5"}
        )
        assert ctx.local_time == time(21, 15)
        assert ctx.as_of == date(2026, 10, 19)
        assert ctx.total_thc_mg == 12.5

    def test_offset_on_local_time_dropped(self):
        ctx = EvaluationContext.model_validate({"local_time": "14:30:00+02:00"})
        assert ctx.local_time == time(14, 30)
        assert ctx.local_time.tzinfo is None

    def test_as_of_defaults_to_today(self):
        assert EvaluationContext().as_of == utcnow().date()
        assert EvaluationContext(as_of=None).as_of == utcnow().date()
        assert EvaluationContext(as_of=date(2026, 1, 2)).as_of == date(2026, 1, 2)

    def test_dob_only_context_yields_dated_payload(self):
        payload = build_check_data(
            CheckType.AGE_VERIFICATION,
            PolicySettings(),
            EvaluationContext(customer_dob=date(1980, 1, 1)),
        )
        assert payload.as_of == utcnow().date()
