"""RUT status query against the DIAN MUISCA portal.

One call to RutStatusQuery.run() is one attempt: it drives the JSF form for a
single identifier, passes the Turnstile challenge through the solver client
and reads the registry fields back. Failures are raised as the typed errors of
rutbatch.errors; deciding whether to retry belongs to the retry controller.

When RunConfig.diagnostics_dir is set, a page failure (selector timeout,
extraction failure or a registry validation message) leaves a screenshot and
the page HTML behind, named after the identifier.
"""

import re
from datetime import datetime
from typing import Dict, Optional

from ...captcha.client import ChallengeSolverClient
from ...captcha.interfaces import SolveOutcome, SolveStatus
from ...config.logger import logger
from ...config.settings import RunConfig
from ...errors import (
    CaptchaPollTimeout,
    CaptchaServiceError,
    CaptchaSubmitError,
    CaptchaUnsolvable,
    ExtractionError,
    RutLookupError,
    SelectorTimeoutError,
    SiteValidationError,
)
from ...session.interfaces import ChallengeLocator, ISession


# Failures worth a look at the page that produced them
PAGE_FAILURES = (SelectorTimeoutError, ExtractionError, SiteValidationError)


def _jsf_id(name: str) -> str:
    # JSF ids contain ':' which would need escaping in an id selector
    return f'[id="vistaConsultaEstadoRUT:formConsultaEstadoRUT:{name}"]'


class RutStatusQuery:
    """Lookup flow for the "Consulta Estado RUT" page."""

    QUERY_URL = "https://muisca.dian.gov.co/WebRutMuisca/DefConsultaEstadoRUT.faces"

    IDENTIFIER_INPUT = _jsf_id("numNit")
    SEARCH_BUTTON = _jsf_id("btnBuscar")
    STATUS_FIELD = _jsf_id("estado")
    ERROR_SUMMARY = ".ui-messages-error-summary"

    CHALLENGE = ChallengeLocator(site_key_selector=".cf-turnstile", site_key_attribute="data-sitekey")

    FIELD_SCHEMA: Dict[str, str] = {
        "primer_apellido": _jsf_id("primerApellido"),
        "segundo_apellido": _jsf_id("segundoApellido"),
        "primer_nombre": _jsf_id("primerNombre"),
        "otros_nombres": _jsf_id("otrosNombres"),
        "estado": STATUS_FIELD,
    }

    def __init__(self, config: RunConfig, query_url: Optional[str] = None):
        self.config = config
        self.query_url = query_url or self.QUERY_URL
        self.logger = logger.bind(connector="dian")

    async def run(self, session: ISession, identifier: str, solver: ChallengeSolverClient) -> Dict[str, str]:
        """Perform one lookup attempt.

        Args:
            session: The worker's session, exclusively used for this attempt.
            identifier: Cédula or NIT to look up.
            solver: Client used when the page shows a challenge.

        Returns:
            Extracted fields keyed as in FIELD_SCHEMA.

        Raises:
            NavigationError, SelectorTimeoutError, ExtractionError: page failures.
            SiteValidationError: The registry rejected the identifier.
            CaptchaError: The solving service failed for this attempt.
        """
        try:
            return await self._lookup(session, identifier, solver)
        except PAGE_FAILURES as e:
            await self._save_diagnostics(session, identifier, e)
            raise

    async def _lookup(self, session: ISession, identifier: str, solver: ChallengeSolverClient) -> Dict[str, str]:
        log = self.logger.bind(identifier=identifier)

        await session.reset()
        await session.navigate(self.query_url, self.config.navigation_timeout)
        await session.wait_visible(self.IDENTIFIER_INPUT, self.config.selector_timeout)
        await session.set_value(self.IDENTIFIER_INPUT, identifier)

        challenge = await session.capture_challenge_artifact(self.CHALLENGE)
        if challenge is not None:
            log.debug("challenge_detected", method=challenge.method.value)
            outcome = await solver.solve(challenge)
            token = self._token_or_raise(outcome, identifier)
            await session.apply_challenge_solution(challenge, token, self.CHALLENGE)

        await session.click(self.SEARCH_BUTTON)
        await session.wait_visible(f"{self.STATUS_FIELD}, {self.ERROR_SUMMARY}", self.config.selector_timeout)

        if await session.is_present(self.ERROR_SUMMARY):
            message = await session.extract_text(self.ERROR_SUMMARY)
            raise SiteValidationError(message or "identifier rejected by the registry", identifier=identifier)

        fields = await session.extract_fields(self.FIELD_SCHEMA)
        if fields is None:
            raise ExtractionError("no result fields found on the page", identifier=identifier)

        log.info("rut_status_extracted", estado=fields["estado"])
        return fields

    async def _save_diagnostics(self, session: ISession, identifier: str, error: RutLookupError) -> None:
        directory = self.config.diagnostics_dir
        if directory is None:
            return

        safe_id = re.sub(r"[^\w.-]", "_", identifier)
        label = f"{safe_id}_{error.kind.value}_{datetime.now():%Y%m%d_%H%M%S_%f}"
        try:
            paths = await session.save_diagnostics(directory, label)
        except (RutLookupError, OSError) as e:
            self.logger.warning("diagnostics_not_saved", identifier=identifier, error=str(e))
            return
        self.logger.info("diagnostics_saved", identifier=identifier, files=[str(p) for p in paths])

    @staticmethod
    def _token_or_raise(outcome: SolveOutcome, identifier: str) -> str:
        if outcome.status is SolveStatus.SOLVED and outcome.token:
            return outcome.token

        detail = outcome.detail or outcome.status.value
        if outcome.status is SolveStatus.UNSOLVABLE:
            raise CaptchaUnsolvable(f"challenge unsolvable: {detail}", identifier=identifier)
        if outcome.status is SolveStatus.TIMEOUT:
            raise CaptchaPollTimeout(f"challenge not solved after {outcome.polls} polls", identifier=identifier)
        if outcome.status is SolveStatus.SERVICE_ERROR and not outcome.submitted:
            raise CaptchaSubmitError(f"challenge submission failed: {detail}", identifier=identifier)
        raise CaptchaServiceError(f"solving service error: {detail}", identifier=identifier)
