"""Sequential custom ID assignment."""

import pytest

from niraiva import custom_ids
from niraiva.custom_ids import (
    CustomIdUnavailableError,
    assign_custom_id,
    custom_id_prefix,
    format_custom_id,
    parse_sequence,
)
from niraiva.db.models import DeletedAccount, User


def _add_user(session, custom_id, email=None):
    session.add(
        User(
            email=email or f'{custom_id.strip("#").lower()}@example.test',
            role='patient',
            is_onboarded=True,
            custom_id=custom_id,
        )
    )


def _archive(session, custom_id):
    session.add(DeletedAccount(role='patient', custom_id=custom_id, reason='test'))


def test_next_id_follows_active_and_archived(db_session):
    _add_user(db_session, '#Nrivaa001')
    _add_user(db_session, '#Nrivaa002')
    _archive(db_session, '#Nrivaa003')
    db_session.commit()

    assert assign_custom_id(db_session, 'patient') == '#Nrivaa004'


def test_first_id_for_empty_prefix(db_session):
    assert assign_custom_id(db_session, 'patient') == '#Nrivaa001'
    assert assign_custom_id(db_session, 'doctor') == '#DR001'


def test_prefixes_are_independent(db_session):
    _add_user(db_session, '#Nrivaa041')
    _add_user(db_session, '#DR007', email='dr7@example.test')
    db_session.commit()

    assert assign_custom_id(db_session, 'doctor') == '#DR008'
    assert assign_custom_id(db_session, 'patient') == '#Nrivaa042'


def test_unparsable_suffixes_are_ignored(db_session):
    _add_user(db_session, '#Nrivaa005')
    _add_user(db_session, '#NrivaaLEGACY')
    _archive(db_session, '#Nrivaa')
    db_session.commit()

    assert assign_custom_id(db_session, 'patient') == '#Nrivaa006'


def test_archived_ids_are_never_reissued(db_session):
    _add_user(db_session, '#DR001', email='a@example.test')
    db_session.commit()
    user = db_session.query(User).filter_by(custom_id='#DR001').one()
    db_session.add(DeletedAccount(original_user_id=user.id, role='doctor', custom_id='#DR001'))
    db_session.delete(user)
    db_session.commit()

    assert assign_custom_id(db_session, 'doctor') == '#DR002'


def test_back_to_back_assignments_differ(db_session):
    first = assign_custom_id(db_session, 'patient')
    _add_user(db_session, first)
    db_session.commit()
    second = assign_custom_id(db_session, 'patient')

    assert first != second
    assert parse_sequence(second, '#Nrivaa') == parse_sequence(first, '#Nrivaa') + 1


def test_wide_numbers_are_written_in_full(db_session):
    _add_user(db_session, '#DR999')
    db_session.commit()

    assert assign_custom_id(db_session, 'doctor') == '#DR1000'


def test_collision_retries_then_gives_up(db_session, monkeypatch):
    calls = []

    def always_taken(session, candidate):
        calls.append(candidate)
        return True

    monkeypatch.setattr(custom_ids, '_is_taken', always_taken)
    with pytest.raises(CustomIdUnavailableError):
        assign_custom_id(db_session, 'patient', max_attempts=5)
    assert len(calls) == 5


def test_collision_then_success(db_session, monkeypatch):
    outcomes = iter([True, False])
    monkeypatch.setattr(custom_ids, '_is_taken', lambda session, candidate: next(outcomes))

    assert assign_custom_id(db_session, 'patient', max_attempts=3) == '#Nrivaa001'


def test_unknown_role_rejected(db_session):
    with pytest.raises(ValueError):
        assign_custom_id(db_session, 'admin')
    with pytest.raises(ValueError):
        custom_id_prefix('nurse')


def test_format_and_parse_helpers():
    assert format_custom_id('#Nrivaa', 7) == '#Nrivaa007'
    assert parse_sequence('#Nrivaa007', '#Nrivaa') == 7
    assert parse_sequence('#DR12', '#Nrivaa') is None
    assert parse_sequence(None, '#DR') is None


def test_non_ascii_digit_suffixes_are_ignored(db_session):
    assert parse_sequence('#DR²', '#DR') is None
    assert parse_sequence('#DR٣', '#DR') is None
    _add_user(db_session, '#Nrivaa002')
    _add_user(db_session, '#Nrivaa00²')
    db_session.commit()

    assert assign_custom_id(db_session, 'patient') == '#Nrivaa003'
