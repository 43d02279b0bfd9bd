"""
Tests for the Package Resolver component
"""
import pytest

from clearbound.components.contracts import PACKAGES
from clearbound.components.package_resolver import (PACKAGE_TABLE,
                                                    STAGE_FIELDS, resolve)
from clearbound.core.errors import UnknownPackageError


@pytest.mark.parametrize("package_id", PACKAGES)
def test_stages_produce_exactly_the_licensed_fields(package_id):
    plan = resolve(package_id)
    produced = {name for stage in plan.stages for name in STAGE_FIELDS[stage]}
    assert produced == set(plan.licensed_fields)
    assert set(plan.field_budgets) == set(plan.licensed_fields)
    assert set(plan.stage_budgets) == set(plan.stages)


@pytest.mark.parametrize("package_id", PACKAGES)
def test_flags_match_table(package_id):
    plan = resolve(package_id)
    assert (plan.want_message, plan.want_email, plan.want_analysis) == PACKAGE_TABLE[package_id]


def test_total_runs_analysis_and_bundle():
    plan = resolve("total")
    assert plan.stages == ("analysis", "bundle")
    assert plan.licensed_fields == ("message_text", "email_text", "analysis_report", "notes")


def test_message_budgets():
    plan = resolve("message")
    assert plan.field_budgets["message_text"].min_chars == 220
    assert plan.field_budgets["message_text"].max_chars == 900
    assert "email_text" not in plan.field_budgets


@pytest.mark.parametrize("package_id", ["", "bundle", "premium", None])
def test_unknown_package(package_id):
    with pytest.raises(UnknownPackageError):
        resolve(package_id)
