"""
Flask Application Module

Webhook endpoints of the voicemail bridge.

The start endpoint answers a verified incoming call with TwiML that plays the
greeting and records the caller. The done endpoint receives the finished
recording and hands its details to the outbound publisher. Both endpoints
reject requests that are not signed with the shared auth token.
"""

from dataclasses import dataclass, field
from enum import Enum
import traceback
from typing import Dict, List, Optional, Tuple, Union

from flask import Flask, jsonify, request, Response
from werkzeug.exceptions import HTTPException

from .config import Config
from .log import configure_structlog, get_logger
from .models import Recording, SerializationError
from .publisher import AMQPTransport, Publisher, QueuedPublisher
from .signature import SIGNATURE_HEADER, join_values, verify_signature
from .twiml_builder import TWIML_CONTENT_TYPE, TwiMLBuilder


class RejectionReason(Enum):
    """Why a webhook request was not processed, with the HTTP status it maps to"""
    METHOD_NOT_ALLOWED = ("method_not_allowed", 405)
    INVALID_SIGNATURE = ("invalid_signature", 401)
    SERIALIZATION_FAILED = ("serialization_failed", 500)
    PUBLISH_FAILED = ("publish_failed", 503)

    def __init__(self, error_type: str, status_code: int):
        self.error_type = error_type
        self.status_code = status_code


@dataclass(frozen=True)
class WebhookRequest:
    """
    The parts of an inbound webhook the handlers need

    Attributes:
        method: HTTP method
        request_uri: path plus query string as received
        form_fields: decoded form body, field name to list of values
        signature: value of the signature header, None when absent
    """
    method: str
    request_uri: str
    form_fields: Dict[str, List[str]] = field(default_factory=dict)
    signature: Optional[str] = None

    def value(self, name: str) -> str:
        """Form value with repeated fields joined, empty when absent"""
        return join_values(self.form_fields.get(name, []))


@dataclass(frozen=True)
class Accepted:
    """The request was verified and processed; ``document`` is the TwiML to return, if any"""
    document: Optional[str] = None


@dataclass(frozen=True)
class Rejected:
    """The request was not processed"""
    reason: RejectionReason
    message: str


HandlerResult = Union[Accepted, Rejected]


def create_error_response(
    error_type: str,
    message: str,
    status_code: int
) -> Tuple[Response, int]:
    """
    Build a JSON error response

    Args:
        error_type: machine readable error name
        message: human readable description
        status_code: HTTP status code

    Returns:
        (JSON response, status code)
    """
    response_body = {
        "error": error_type,
        "message": message,
        "status_code": status_code
    }
    return jsonify(response_body), status_code


class WebhookHandler:
    """
    Handles the start and done webhooks of the voicemail call script

    Holds no mutable state of its own, so one instance serves all request
    threads. The publisher is the only shared resource and is thread-safe.

    Attributes:
        config: application settings
        twiml_builder: builds the greet-and-record document
        publisher: outbound sink for serialized recordings
        logger: structured logger
    """

    def __init__(
        self,
        config: Config,
        twiml_builder: TwiMLBuilder,
        publisher: Publisher
    ):
        self.config = config
        self.twiml_builder = twiml_builder
        self.publisher = publisher
        self.logger = get_logger(__name__)

    def _authenticate(self, webhook: WebhookRequest, stage: str) -> Optional[Rejected]:
        """
        Check method and signature

        Returns:
            None when the request may proceed, otherwise the rejection
        """
        if webhook.method.upper() != "POST":
            self.logger.warning(
                f"{stage}_request_rejected",
                reason=RejectionReason.METHOD_NOT_ALLOWED.error_type,
                method=webhook.method,
                request_uri=webhook.request_uri
            )
            return Rejected(
                reason=RejectionReason.METHOD_NOT_ALLOWED,
                message=f"Invalid {stage} request: method {webhook.method} is not allowed"
            )

        valid = verify_signature(
            method=webhook.method,
            request_uri=webhook.request_uri,
            form_fields=webhook.form_fields,
            supplied_signature=webhook.signature,
            host=self.config.host,
            secret=self.config.auth_token
        )
        if not valid:
            self.logger.warning(
                f"{stage}_request_rejected",
                reason=RejectionReason.INVALID_SIGNATURE.error_type,
                signature_present=bool(webhook.signature),
                request_uri=webhook.request_uri
            )
            return Rejected(
                reason=RejectionReason.INVALID_SIGNATURE,
                message=f"Invalid {stage} request: signature verification failed"
            )

        return None

    def handle_start(self, webhook: WebhookRequest) -> HandlerResult:
        """
        Handle the start webhook of an incoming call

        Args:
            webhook: inbound request

        Returns:
            Accepted carrying the TwiML document, or Rejected
        """
        rejection = self._authenticate(webhook, "start")
        if rejection is not None:
            return rejection

        document = self.twiml_builder.build_voicemail_twiml()

        self.logger.info(
            "start_request_accepted",
            call_sid=webhook.value("CallSid"),
            caller=webhook.value("From"),
            record_action=self.config.done_url
        )

        return Accepted(document=document)

    def handle_done(self, webhook: WebhookRequest) -> HandlerResult:
        """
        Handle the recording-complete webhook

        Builds a Recording from the From, To and RecordingUrl fields and hands
        its JSON encoding to the publisher exactly once.

        Args:
            webhook: inbound request

        Returns:
            Accepted without a document once the payload is enqueued, or Rejected
        """
        rejection = self._authenticate(webhook, "done")
        if rejection is not None:
            return rejection

        recording = Recording(
            from_number=webhook.value("From"),
            to_number=webhook.value("To"),
            url=webhook.value("RecordingUrl")
        )

        self.logger.info(
            "recording_received",
            caller=recording.from_number,
            recording_url=recording.url
        )

        try:
            payload = recording.to_json()
        except SerializationError as e:
            self.logger.error(
                "recording_serialization_failed",
                caller=recording.from_number,
                error=str(e),
                exc_info=True
            )
            return Rejected(
                reason=RejectionReason.SERIALIZATION_FAILED,
                message="Failed to serialize recording"
            )

        if not self.publisher.send(payload):
            self.logger.error(
                "recording_publish_refused",
                caller=recording.from_number,
                recording_url=recording.url
            )
            return Rejected(
                reason=RejectionReason.PUBLISH_FAILED,
                message="Recording could not be queued for delivery"
            )

        self.logger.info(
            "recording_enqueued",
            caller=recording.from_number,
            payload_size=len(payload)
        )

        return Accepted()


def _request_uri() -> str:
    """
    Path plus query string of the current request, as the client sent it

    Only RAW_URI/REQUEST_URI carry the undecoded form. Servers that set
    neither fall back to SCRIPT_NAME + PATH_INFO, which the server has already
    percent-decoded, so a client that escaped reserved characters in the path
    will not verify there.
    """
    environ = request.environ
    raw_uri = environ.get("RAW_URI") or environ.get("REQUEST_URI")
    if raw_uri:
        return raw_uri

    uri = environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "")
    query = environ.get("QUERY_STRING", "")
    return f"{uri}?{query}" if query else uri


def webhook_request_from_flask() -> WebhookRequest:
    """Capture the current Flask request as a WebhookRequest"""
    return WebhookRequest(
        method=request.method,
        request_uri=_request_uri(),
        form_fields={key: values for key, values in request.form.lists()},
        signature=request.headers.get(SIGNATURE_HEADER)
    )


def create_app(config: Optional[Config] = None, publisher: Optional[Publisher] = None) -> Flask:
    """
    Create the Flask application

    Args:
        config: application settings (loaded from the environment when None)
        publisher: outbound sink (an AMQP backed QueuedPublisher is created
            and started when None)

    Returns:
        The configured Flask application
    """
    app = Flask(__name__)

    if config is None:
        config = Config.from_env()

    app.config["VOICEMAIL_BRIDGE_CONFIG"] = config

    configure_structlog(config.log_level)

    logger = get_logger(__name__)
    logger.info(
        "application_initialized",
        log_level=config.log_level,
        host=config.host
    )

    if publisher is None:
        queued_publisher = QueuedPublisher(
            transport=AMQPTransport(config.amqp_uri, config.amqp_queue),
            maxsize=config.publish_queue_size,
            enqueue_timeout=config.publish_timeout
        )
        queued_publisher.start()
        publisher = queued_publisher
    app.config["PUBLISHER"] = publisher

    twiml_builder = TwiMLBuilder(config)
    app.config["TWIML_BUILDER"] = twiml_builder

    webhook_handler = WebhookHandler(
        config=config,
        twiml_builder=twiml_builder,
        publisher=publisher
    )
    app.config["WEBHOOK_HANDLER"] = webhook_handler

    # ==========================================================================
    # Error Handlers
    # ==========================================================================

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        logger.warning(
            "http_error",
            status_code=error.code,
            error_message=str(error),
            path=request.path,
            method=request.method
        )
        return create_error_response(
            error_type=(error.name or "http_error").lower().replace(" ", "_"),
            message=error.description or error.name,
            status_code=error.code or 500
        )

    @app.errorhandler(Exception)
    def handle_generic_exception(error):
        """Log unexpected exceptions with their stack trace"""
        logger.error(
            "unhandled_exception",
            error_type=type(error).__name__,
            error_message=str(error),
            path=request.path,
            method=request.method,
            stack_trace=traceback.format_exc(),
            exc_info=True
        )
        return create_error_response(
            error_type="internal_error",
            message="An unexpected error occurred",
            status_code=500
        )

    def rejection_response(result: Rejected) -> Tuple[Response, int]:
        return create_error_response(
            error_type=result.reason.error_type,
            message=result.message,
            status_code=result.reason.status_code
        )

    # ==========================================================================
    # Endpoints
    # ==========================================================================

    @app.route("/health", methods=["GET"])
    def health_check():
        logger.debug("health_check_requested")
        return jsonify({"status": "healthy"}), 200

    # Non-POST requests are routed so the handler can reject them itself
    @app.route(config.start_path, methods=["GET", "POST"], endpoint="start_webhook")
    def start_webhook():
        """
        Start endpoint

        Returns:
            200 with the TwiML document, or a JSON error
        """
        webhook = webhook_request_from_flask()
        logger.debug(
            "start_webhook_received",
            method=webhook.method,
            request_uri=webhook.request_uri,
            fields=sorted(webhook.form_fields)
        )

        result = webhook_handler.handle_start(webhook)
        if isinstance(result, Rejected):
            return rejection_response(result)

        return Response(result.document, status=200, content_type=TWIML_CONTENT_TYPE)

    @app.route(config.done_path, methods=["GET", "POST"], endpoint="done_webhook")
    def done_webhook():
        """
        Done endpoint

        Returns:
            204 once the recording is queued, or a JSON error
        """
        webhook = webhook_request_from_flask()
        logger.debug(
            "done_webhook_received",
            method=webhook.method,
            request_uri=webhook.request_uri,
            fields=sorted(webhook.form_fields)
        )

        result = webhook_handler.handle_done(webhook)
        if isinstance(result, Rejected):
            return rejection_response(result)

        return Response(status=204)

    logger.info(
        "application_ready",
        endpoints=["/health", config.start_path, config.done_path]
    )

    return app
