"""Tests for institutions and tender assignment."""
import pytest
from sqlalchemy.exc import IntegrityError

from tenderwatch.core.orchestrator import InstitutionNotFoundError, TrackingService
from tenderwatch.persistence.repo import InstitutionRepository, TenderRepository

from conftest import add_institution, track_tender


@pytest.fixture()
def tracking(scope):
    return TrackingService(scope, client=None)


def test_create_is_unique_by_name(scope):
    first = add_institution(scope, "Hospital Regional")

    with scope() as session:
        institution, created = InstitutionRepository(session).create("Hospital Regional")

    assert created is False
    assert institution.id == first


def test_list_is_sorted_by_name(scope):
    for name in ("Hospital Sur", "Clínica Norte", "Hospital Regional"):
        add_institution(scope, name)

    with scope() as session:
        names = [i.name for i in InstitutionRepository(session).list_all()]

    assert names == ["Clínica Norte", "Hospital Regional", "Hospital Sur"]


def test_assign_rejects_unknown_institution(scope, tracking):
    track_tender(scope, "1000-1-LE24")

    with pytest.raises(InstitutionNotFoundError) as exc_info:
        tracking.assign("1000-1-LE24", 1, institution_id=99, line="Oncología")

    assert exc_info.value.institution_id == 99
    with scope() as session:
        tender = TenderRepository(session).get("1000-1-LE24", 1)
        assert (tender.institution_id, tender.line) == (None, None)


def test_store_rejects_dangling_institution_id(scope):
    track_tender(scope, "1000-1-LE24")

    with pytest.raises(IntegrityError):
        with scope() as session:
            TenderRepository(session).assign("1000-1-LE24", 1, institution_id=99)


def test_delete_unassigns_tenders(scope, tracking):
    hospital = add_institution(scope, "Hospital Regional")
    track_tender(scope, "1000-1-LE24")
    tracking.assign("1000-1-LE24", 1, institution_id=hospital, line="Anestesia")

    with scope() as session:
        assert InstitutionRepository(session).delete(hospital) is True
    with scope() as session:
        assert InstitutionRepository(session).delete(hospital) is False
        tender = TenderRepository(session).get("1000-1-LE24", 1)
        assert tender.institution_id is None
        assert tender.line == "Anestesia"


def test_tenders_grouped_by_line_for_one_user(scope, tracking):
    hospital = add_institution(scope, "Hospital Regional")
    for code, user_id, line in [
        ("1000-1-LE24", 1, "Oncología"),
        ("1000-2-LE24", 1, "Anestesia"),
        ("1000-3-LE24", 1, None),
        ("1000-4-LE24", 2, "Anestesia"),
    ]:
        track_tender(scope, code, user_id=user_id)
        tracking.assign(code, user_id, institution_id=hospital, line=line)

    with scope() as session:
        codes = [t.code for t in InstitutionRepository(session).tenders(hospital, 1)]

    assert codes == ["1000-2-LE24", "1000-1-LE24", "1000-3-LE24"]
