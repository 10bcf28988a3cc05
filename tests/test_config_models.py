# tests/test_config_models.py
from __future__ import annotations

from dataclasses import replace

import pytest

from leadpipe.config import (
    REVENUE_MIN_FILTER,
    STAGE_CONTACT_ENRICHMENT,
    STAGE_IMAGE_EXTRACTION,
    STAGE_MESSAGE_GENERATION,
    load_settings,
    require_stage_credentials,
)
from leadpipe.exceptions import ConfigError, InvalidStatusTransition
from leadpipe.models import (
    CompanyStatus,
    ContactStatus,
    TERMINAL_COMPANY_STATUSES,
    TERMINAL_CONTACT_STATUSES,
    check_company_transition,
    check_contact_transition,
)

# -----------------------------
# Settings
# -----------------------------


def test_defaults(settings):
    assert settings.pipeline.batch_size == 5
    assert settings.pipeline.vt_seconds == 60
    assert settings.pipeline.revenue_min == REVENUE_MIN_FILTER == 2_000_000
    assert settings.queue.image_queue == "image-processing"
    assert settings.queue.contact_queue == "contact-enrichment"
    assert settings.queue.message_queue == "email-generation"
    assert settings.trigger.invoke_base_url is None
    assert settings.outreach.firm_name == "Good Hope Advisors"


def test_env_overrides(monkeypatch, settings):
    monkeypatch.setenv("PIPELINE_BATCH_SIZE", "3")
    monkeypatch.setenv("TRIGGER_THRESHOLD_EMAIL_GENERATION", "1")
    monkeypatch.setenv("STAGE_INVOKE_BASE_URL", "https://pipeline.example.test/")

    cfg = load_settings()

    assert cfg.pipeline.batch_size == 3
    assert cfg.pipeline.max_workers == 3
    assert cfg.trigger.threshold_for("email-generation") == 1
    assert cfg.trigger.threshold_for("contact-enrichment") == 5
    assert cfg.trigger.invoke_base_url == "https://pipeline.example.test"


def test_bad_integer_env_is_rejected(monkeypatch, settings):
    monkeypatch.setenv("PIPELINE_VT_SECONDS", "soon")
    with pytest.raises(ValueError, match="PIPELINE_VT_SECONDS"):
        load_settings()


@pytest.mark.parametrize(
    "stage", [STAGE_IMAGE_EXTRACTION, STAGE_CONTACT_ENRICHMENT, STAGE_MESSAGE_GENERATION]
)
def test_credentials_present(settings, stage):
    require_stage_credentials(settings, stage)


def test_missing_directory_credentials(settings):
    cfg = replace(settings, directory=replace(settings.directory, password=None))
    with pytest.raises(ConfigError, match="DIRECTORY_PASSWORD"):
        require_stage_credentials(cfg, STAGE_CONTACT_ENRICHMENT)
    # other stages do not need them
    require_stage_credentials(cfg, STAGE_MESSAGE_GENERATION)


def test_missing_llm_key_blocks_two_stages(settings):
    cfg = replace(settings, llm=replace(settings.llm, api_key=None))
    for stage in (STAGE_IMAGE_EXTRACTION, STAGE_MESSAGE_GENERATION):
        with pytest.raises(ConfigError, match="OPENAI_API_KEY"):
            require_stage_credentials(cfg, stage)


def test_unknown_stage_is_config_error(settings):
    with pytest.raises(ConfigError):
        require_stage_credentials(settings, "reticulate-splines")


# -----------------------------
# Status machines
# -----------------------------


@pytest.mark.parametrize(
    "target",
    [
        CompanyStatus.PROCESSED,
        CompanyStatus.LOW_REVENUE,
        CompanyStatus.NOT_FOUND,
        CompanyStatus.CONTACTS_FAILED,
    ],
)
def test_enriching_company_can_finish(target):
    check_company_transition(CompanyStatus.ENRICHING, target)
    check_company_transition(target, CompanyStatus.SENT)


def test_company_cannot_reenter_enriching():
    with pytest.raises(InvalidStatusTransition):
        check_company_transition(CompanyStatus.PROCESSED, CompanyStatus.ENRICHING)
    with pytest.raises(InvalidStatusTransition):
        check_company_transition("sent", "processed")


def test_contact_transitions():
    check_contact_transition(ContactStatus.GENERATING_MESSAGE, ContactStatus.READY_TO_SEND)
    check_contact_transition("generating_message", "failed")
    with pytest.raises(InvalidStatusTransition) as err:
        check_contact_transition(ContactStatus.READY_TO_SEND, ContactStatus.GENERATING_MESSAGE)
    assert err.value.entity == "contact"


def test_terminal_sets():
    assert TERMINAL_COMPANY_STATUSES == {CompanyStatus.SENT}
    assert TERMINAL_CONTACT_STATUSES == {
        ContactStatus.READY_TO_SEND,
        ContactStatus.FAILED,
        ContactStatus.NO_CONTACT,
        ContactStatus.LOW_REVENUE,
    }


def test_store_rejects_illegal_transition(store):
    from leadpipe.ingest.resolver import upsert_company
    from leadpipe.models import CompanyCandidate

    res = upsert_company(store, CompanyCandidate(name="Acme"))
    store.update_company_status(res.company_id, CompanyStatus.NOT_FOUND)
    with pytest.raises(InvalidStatusTransition):
        store.update_company_status(res.company_id, CompanyStatus.PROCESSED)
    with pytest.raises(KeyError):
        store.update_company_status("missing", CompanyStatus.SENT)
