"""Two-tier URL substitution against an editing session.

An in-place patch touches the fewest characters and is tried first. If the
session cannot patch, or reports failure, the whole body is rewritten from
the snapshot. Either way the diff verifier runs afterwards.
"""

from collections.abc import Mapping

from qic.exceptions import PollTimeoutError, SubstitutionNotAppliedError
from qic.markdown.diff_check import normalize_document
from qic.markdown.urls import substitute
from qic.services.protocols import EditingSession, SubstitutionOutcome
from qic.utils.logging import get_logger
from qic.utils.polling import poll_until

log = get_logger(__name__)


async def apply_url_substitutions(
    session: EditingSession,
    mapping: Mapping[str, str],
    *,
    settle_timeout: float,
    settle_interval: float,
) -> SubstitutionOutcome:
    """Apply `mapping` to the session body.

    Returns:
        The in-place outcome when patching succeeded, otherwise the outcome
        of the full rewrite (``detail="full_rewrite"``)

    Raises:
        SubstitutionNotAppliedError: The rewritten body never showed up in a
            live read before `settle_timeout`
    """
    patch = getattr(session, "apply_substitutions", None)
    if patch is not None:
        outcome = await patch(mapping)
        if outcome.ok:
            log.info(
                "replace_urls.in_place",
                rules=len(mapping),
                replaced=outcome.replaced_count,
            )
            return outcome
        log.warning(
            "replace_urls.in_place_failed",
            rules=len(mapping),
            replaced=outcome.replaced_count,
            detail=outcome.detail,
        )

    snapshot = await session.read_snapshot()
    rewritten = substitute(snapshot, mapping)
    log.info("replace_urls.full_rewrite", rules=len(mapping), length=len(rewritten))
    await session.write(rewritten)

    expected = normalize_document(rewritten)
    try:
        await poll_until(
            session.read_live,
            lambda body: normalize_document(body) == expected,
            interval=settle_interval,
            timeout=settle_timeout,
            description="rewritten body to appear in editor",
            tolerate_errors=True,
        )
    except PollTimeoutError as e:
        raise SubstitutionNotAppliedError(len(mapping), settle_timeout) from e

    replaced = sum(snapshot.count(old) for old in mapping if old)
    return SubstitutionOutcome(ok=True, replaced_count=replaced, detail="full_rewrite")
