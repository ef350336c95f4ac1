"""Unit tests for the saga compensation stack."""

import pytest

from safety_admin.common.compensation import CompensationStack


def test_rollback_runs_compensations_newest_first() -> None:
    calls = []

    with pytest.raises(RuntimeError, match='step three'):
        with CompensationStack('demo') as saga:
            saga.push('one', lambda: calls.append('undo one'))
            saga.push('two', lambda: calls.append('undo two'))
            raise RuntimeError('step three failed')

    assert calls == ['undo two', 'undo one']
    assert saga.failures == []


def test_failed_compensation_never_masks_the_original_error() -> None:
    calls = []

    def broken():
        raise ValueError('cannot undo')

    saga = CompensationStack('demo', context={'user_id': 'user-1'})
    with pytest.raises(KeyError):
        with saga:
            saga.push('one', lambda: calls.append('undo one'))
            saga.push('two', broken)
            raise KeyError('boom')

    # The older step still ran after the newer one failed.
    assert calls == ['undo one']
    assert [f.step for f in saga.failures] == ['two']
    assert isinstance(saga.failures[0].error, ValueError)


def test_completed_saga_discards_compensations() -> None:
    calls = []

    with CompensationStack('demo') as saga:
        saga.push('one', lambda: calls.append('undo'))

    assert calls == []
    assert len(saga) == 0
