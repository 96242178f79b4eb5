import pytest


@pytest.fixture(autouse=True)
def _plain_http_in_tests(settings):
    # SecurityMiddleware must not bounce the test client to https://testserver/
    settings.SECURE_SSL_REDIRECT = False

    # Secure cookies break session auth over plain http
    settings.SESSION_COOKIE_SECURE = False
    settings.CSRF_COOKIE_SECURE = False
    settings.SECURE_HSTS_SECONDS = 0

    # Celery tasks run inline, no broker needed
    settings.CELERY_TASK_ALWAYS_EAGER = True
