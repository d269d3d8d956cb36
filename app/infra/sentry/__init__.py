from typing import Any, Callable

import sentry_sdk

from app.infra.config.settings import settings


def init_sentry(
    *,
    traces_sampler: Callable[[Any], float] | None = None,
    before_send_transaction: Callable[[Any, Any], Any] | None = None,
):
    traces_sample_rate = None
    if traces_sampler is None:
        traces_sample_rate = 1.0

    sentry_sdk.init(
        dsn=settings.sentry.dsn,
        traces_sampler=traces_sampler,
        traces_sample_rate=traces_sample_rate,
        before_send_transaction=before_send_transaction,
        send_default_pii=False,
    )
