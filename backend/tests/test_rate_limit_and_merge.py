from arena.services import merge_answers
from arena.utils.rate_limit import LoginRateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_limiter_blocks_then_recovers():
    clock = FakeClock()
    limiter = LoginRateLimiter(max_attempts=2, window_seconds=60, clock=clock)
    assert limiter.hit('ip:a@b.com') == (True, 0)
    assert limiter.hit('ip:a@b.com') == (True, 0)
    allowed, retry_after = limiter.hit('ip:a@b.com')
    assert allowed is False
    assert retry_after == 60
    # other keys are independent
    assert limiter.hit('ip:c@d.com')[0] is True
    clock.now += 61
    assert limiter.hit('ip:a@b.com')[0] is True


def test_limiter_reset():
    limiter = LoginRateLimiter(max_attempts=1, window_seconds=60, clock=FakeClock())
    limiter.hit('k')
    assert limiter.hit('k')[0] is False
    limiter.reset('k')
    assert limiter.hit('k')[0] is True


def test_limiter_drops_expired_keys():
    clock = FakeClock()
    limiter = LoginRateLimiter(max_attempts=3, window_seconds=60, clock=clock, sweep_every=100)
    limiter.hit('k')
    assert len(limiter) == 1
    clock.now += 61
    # the expired entry is replaced, not stacked
    assert limiter.hit('k') == (True, 0)
    assert len(limiter) == 1

    for i in range(1000):
        limiter.hit(f'10.0.0.{i}:someone@arenapark.com')
    assert len(limiter) == 1001
    clock.now += 3600
    for i in range(100):
        limiter.hit(f'10.0.1.{i}:someone@arenapark.com')
    # one-off clients from an hour ago are swept away
    assert len(limiter) <= 100


def test_merge_answers_last_write_wins():
    existing = {'1': 'a', '2': ['x', 'y']}
    merged = merge_answers(existing, {'2': ['z'], '3': 'c'})
    assert merged == {'1': 'a', '2': ['z'], '3': 'c'}
    assert existing == {'1': 'a', '2': ['x', 'y']}
    assert merge_answers(None, {'1': 'a'}) == {'1': 'a'}
