"""Tests for the challenge job state machine."""

import pytest

from rutbatch.captcha.interfaces import ChallengeJob, InvalidJobTransition, JobStatus


class TestChallengeJob:

    def test_starts_submitted(self):
        job = ChallengeJob("42")
        assert job.status is JobStatus.SUBMITTED
        assert not job.status.is_terminal

    def test_not_ready_can_repeat(self):
        job = ChallengeJob("42")
        job.advance(JobStatus.NOT_READY)
        job.advance(JobStatus.NOT_READY)
        assert job.status is JobStatus.NOT_READY

    def test_solved_keeps_token(self):
        job = ChallengeJob("42")
        job.advance(JobStatus.NOT_READY)
        job.advance(JobStatus.SOLVED, token="tok")
        assert job.status.is_terminal
        assert job.token == "tok"

    @pytest.mark.parametrize("terminal", [JobStatus.SOLVED, JobStatus.UNSOLVABLE, JobStatus.ERROR])
    def test_terminal_states_are_final(self, terminal):
        job = ChallengeJob("42")
        job.advance(terminal)

        with pytest.raises(InvalidJobTransition):
            job.advance(JobStatus.NOT_READY)

    def test_cannot_go_back_to_submitted(self):
        job = ChallengeJob("42")
        with pytest.raises(InvalidJobTransition):
            job.advance(JobStatus.SUBMITTED)
