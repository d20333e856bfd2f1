from pytest import fixture

from src.core.rate_limit import NoOpRateLimiter
from src.main import app


@fixture(autouse=True)
def no_rate_limit_and_clean_overrides():
    # Tests that exercise the limiter install their own
    rate_limiter = app.state.rate_limiter
    app.state.rate_limiter = NoOpRateLimiter()

    yield

    app.state.rate_limiter = rate_limiter
    app.dependency_overrides.clear()
