import asyncio
import datetime as dt

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from app.models.medication import Medication
from app.services.scheduler import Scheduler, summarize
from app.services.store import StoreUnavailableError
from app.schemas.scheduler import DispatchDetail

DAY = dt.datetime(2026, 10, 16)


def at(hhmm: str, seconds: int = 0) -> dt.datetime:
    hours, minutes = map(int, hhmm.split(":"))
    return DAY.replace(hour=hours, minute=minutes, second=seconds)


def run(scheduler, now):
    return asyncio.run(scheduler.run_once(now))


def test_single_medication_first_call(scheduler, provider, make_user, make_med, load_med):
    user = make_user()
    aspirin = make_med(user, "Aspirin", "08:00")

    report = run(scheduler, at("08:00"))

    assert report.success
    assert report.batches_triggered == 1
    assert report.total_meds == 1
    assert report.anchor_count == 1
    assert report.details[0].status == "triggered"
    assert provider.requests[0].spoken_text == "Aspirin"
    med = load_med(aspirin)
    assert med.retry_count == 1
    assert med.last_called_at == at("08:00")


def test_upcoming_medication_batched_into_same_call(scheduler, provider, make_user, make_med, load_med):
    user = make_user()
    aspirin = make_med(user, "Aspirin", "08:00")
    vitamin = make_med(user, "Vitamin D", "08:05")

    report = run(scheduler, at("08:00"))

    assert report.batches_triggered == 1
    assert report.total_meds == 2
    assert len(provider.requests) == 1
    assert provider.requests[0].spoken_text == "Aspirin and Vitamin D"
    assert load_med(aspirin).retry_count == 1
    assert load_med(vitamin).retry_count == 1

    # the batched item does not ring again at its own minute
    report = run(scheduler, at("08:05"))
    assert report.batches_triggered == 0
    assert report.details == []
    assert len(provider.requests) == 1


def test_retry_after_cooldown(scheduler, provider, make_user, make_med, load_med):
    user = make_user()
    med = make_med(user, "Aspirin", "07:44", retry_count=1, last_called_at=at("07:44"))

    report = run(scheduler, at("08:00"))

    assert report.batches_triggered == 1
    assert load_med(med).retry_count == 2
    assert load_med(med).last_called_at == at("08:00")


def test_exhausted_medication_never_called(scheduler, provider, make_user, make_med):
    user = make_user()
    make_med(user, "Aspirin", "08:00", retry_count=2, last_called_at=at("06:00"))

    for now in (at("08:00"), at("08:30"), at("12:00")):
        report = run(scheduler, now)
        assert report.batches_triggered == 0
    assert provider.requests == []


def test_partial_commit_failure_blocks_call_then_self_heals(
    scheduler, provider, make_user, make_med, load_med, monkeypatch
):
    user = make_user()
    aspirin = make_med(user, "Aspirin", "08:00")
    vitamin = make_med(user, "Vitamin D", "08:05")
    original = scheduler.store.stamp_call

    async def flaky(medication_id, retry_count, called_at):
        if medication_id == vitamin:
            raise StoreUnavailableError("write conflict")
        await original(medication_id, retry_count, called_at)

    monkeypatch.setattr(scheduler.store, "stamp_call", flaky)
    report = run(scheduler, at("08:00"))
    monkeypatch.setattr(scheduler.store, "stamp_call", original)

    assert not report.success
    assert report.batches_triggered == 0
    assert report.details[0].status == "error"
    assert report.errors[0].startswith(f"{user}: Circuit breaker")
    assert provider.requests == []
    assert load_med(aspirin).retry_count == 1
    assert load_med(vitamin).retry_count == 0

    # Vitamin D is picked up at its own minute, Aspirin waits for its cooldown
    report = run(scheduler, at("08:05"))
    assert report.batches_triggered == 1
    assert [m.name for m in provider.requests[-1].medications] == ["Vitamin D"]
    assert load_med(vitamin).retry_count == 1
    assert load_med(aspirin).retry_count == 1

    report = run(scheduler, at("08:15"))
    assert report.batches_triggered == 1
    assert [m.name for m in provider.requests[-1].medications] == ["Aspirin"]
    assert load_med(aspirin).retry_count == 2
    assert load_med(vitamin).retry_count == 1


def test_empty_runs_are_noops(scheduler, provider, make_user, make_med, load_med):
    user = make_user()
    med = make_med(user, "Aspirin", "09:00")

    first = run(scheduler, at("08:00"))
    second = run(scheduler, at("08:00"))

    assert first == second
    assert first.batches_triggered == 0 and first.errors == [] and first.details == []
    assert provider.requests == []
    assert load_med(med).retry_count == 0


def test_one_user_failure_does_not_block_others(session_factory, make_user, make_med):
    ok_user = make_user(phone="03001111111")
    bad_user = make_user(phone="03002222222")
    no_phone = make_user(phone=None)
    for user in (ok_user, bad_user, no_phone):
        make_med(user, "Aspirin", "08:00")

    class SelectiveProvider:
        def __init__(self):
            self.phones = []

        async def place_call(self, request):
            self.phones.append(request.phone)
            if request.phone == "+923002222222":
                raise RuntimeError("socket closed")
            return "CA-ok"

    provider = SelectiveProvider()
    report = run(Scheduler.from_session_factory(session_factory, provider), at("08:00"))

    statuses = {d.user_id: d.status for d in report.details}
    assert statuses == {ok_user: "triggered", bad_user: "error", no_phone: "skipped"}
    assert report.success
    assert report.batches_triggered == 1
    assert report.errors == [f"{bad_user}: Unexpected error: socket closed"]
    assert sorted(provider.phones) == ["+923001111111", "+923002222222"]


def test_only_errors_is_not_success(session_factory, failing_provider, make_user, make_med):
    user = make_user()
    make_med(user, "Aspirin", "08:00")

    report = run(Scheduler.from_session_factory(session_factory, failing_provider), at("08:00"))

    assert not report.success
    assert report.errors == [f"{user}: Invalid 'To' phone number"]


def test_skips_alone_are_success(scheduler, make_user, make_med):
    user = make_user(phone=None)
    make_med(user, "Aspirin", "08:00")

    report = run(scheduler, at("08:00"))

    assert report.success
    assert report.details[0].status == "skipped"
    assert report.errors == []


def test_store_unreachable_is_fatal(tmp_path, provider):
    engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'nowhere.db'}")
    scheduler = Scheduler.from_session_factory(sessionmaker(bind=engine), provider)

    with pytest.raises(StoreUnavailableError):
        run(scheduler, at("08:00"))


def test_day_of_minutely_runs_keeps_invariants(scheduler, provider, session_factory, make_user, make_med):
    user = make_user()
    make_med(user, "Aspirin", "08:00")
    make_med(user, "Vitamin D", "08:20")
    make_med(user, "Iron", "09:00")
    make_med(user, "Taken", "08:00", is_taken=True)

    now = at("07:55")
    while now <= at("10:30"):
        run(scheduler, now)
        now += dt.timedelta(minutes=1)

    with session_factory() as db:
        meds = {m.name: m for m in db.execute(select(Medication)).scalars()}

    for med in meds.values():
        assert med.retry_count <= 2
        assert (med.last_called_at is None) == (med.retry_count == 0)
    assert meds["Taken"].retry_count == 0
    assert all("Taken" not in [m.name for m in r.medications] for r in provider.requests)
    # two strikes each: 08:00 batch, 08:15 retry (upcoming first), 09:00 Iron, 09:15 Iron retry
    assert [r.spoken_text for r in provider.requests] == [
        "Aspirin and Vitamin D",
        "Vitamin D and Aspirin",
        "Iron",
        "Iron",
    ]


def test_summarize_counts_only_triggered_meds():
    report = summarize(
        [
            DispatchDetail(user_id=1, medication_count=2, status="triggered", call_reference="CA1"),
            DispatchDetail(user_id=2, medication_count=3, status="skipped", error="No phone number available"),
            DispatchDetail(user_id=3, medication_count=1, status="error", error="busy"),
        ]
    )
    assert report.batches_triggered == 1
    assert report.total_meds == 2
    assert report.errors == ["3: busy"]
    assert report.success


def test_late_retry_after_midnight_is_quiet(scheduler, provider, make_user, make_med, caplog):
    user = make_user()
    make_med(user, "Night", "23:50", retry_count=1, last_called_at=at("23:50") - dt.timedelta(days=1))

    with caplog.at_level("INFO", logger="medcalls.scheduler"):
        report = run(scheduler, at("00:10"))

    assert report.anchor_count == 1
    assert report.batches_triggered == 0
    assert report.success
    assert provider.requests == []
    assert not [r for r in caplog.records if r.levelno >= 30]
