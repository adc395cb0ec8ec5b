"""HTTP server entrypoints for the payment request API."""

from __future__ import annotations

import atexit
import errno
import json
import logging
import multiprocessing as mp
import re
import threading
from concurrent.futures import ProcessPoolExecutor, TimeoutError as FutureTimeoutError
from concurrent.futures.process import BrokenProcessPool
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import unquote, urlsplit

from .builder import RequestBuilder, demo_payload
from .config import (
    LISTEN_BACKLOG,
    MAX_BODY_BYTES as MAX_BODY_BYTES_CONFIG,
    MAX_CONCURRENT_RENDERS,
    MAX_INFLIGHT_RENDERS,
    MAX_PAGES as MAX_PAGES_CONFIG,
    OUTPUT_DIR,
    RENDER_QUEUE_TIMEOUT_MS,
    RENDER_TIMEOUT_MS,
)
from .dates import isoformat, utc_now
from .errors import BuildError, DependencyError, RenderTimeout
from .ledger import Ledger
from .pagination import estimate_page_count, max_items_for_pages
from .records import PaymentRequest
from .storage import PdfStorage

logger = logging.getLogger(__name__)

RENDER_EXECUTOR_LOCK = threading.Lock()
RENDER_EXECUTOR: Optional[ProcessPoolExecutor] = None
ValidationError = Tuple[int, Dict[str, Any]]
Renderer = Callable[[PaymentRequest], bytes]

DISCONNECT_ERRNOS = {errno.EPIPE, errno.ECONNRESET, errno.ETIMEDOUT}

DEMO_CLIENTS = [
    {"name": "John Smith", "phone": "0412 345 678", "email": "john@example.com"},
    {"name": "Sarah Johnson", "phone": "0423 456 789", "email": "sarah@example.com"},
    {"name": "Mike Wilson", "phone": "0434 567 890", "email": "mike@example.com"},
]


def is_client_disconnect(exc: BaseException) -> bool:
    """True for errors raised when the peer went away mid-response."""
    if isinstance(exc, (BrokenPipeError, ConnectionResetError, TimeoutError)):
        return True
    return isinstance(exc, OSError) and exc.errno in DISCONNECT_ERRNOS


def load_render_payment_request() -> Renderer:
    try:
        from .rendering import render_payment_request
    except ModuleNotFoundError as exc:
        if exc.name == "fpdf":
            raise DependencyError(
                "Missing dependency 'fpdf'. Install project dependencies with "
                "'pip install -e .'."
            ) from exc
        raise
    return render_payment_request


def create_render_executor() -> ProcessPoolExecutor:
    return ProcessPoolExecutor(
        max_workers=MAX_CONCURRENT_RENDERS,
        mp_context=mp.get_context("spawn"),
    )


def get_render_executor() -> ProcessPoolExecutor:
    global RENDER_EXECUTOR
    with RENDER_EXECUTOR_LOCK:
        if RENDER_EXECUTOR is None:
            RENDER_EXECUTOR = create_render_executor()
        return RENDER_EXECUTOR


def restart_render_executor(previous: ProcessPoolExecutor) -> ProcessPoolExecutor:
    global RENDER_EXECUTOR
    with RENDER_EXECUTOR_LOCK:
        if RENDER_EXECUTOR is previous:
            try:
                previous.shutdown(wait=False, cancel_futures=True)
            except RuntimeError:
                logger.warning("Render pool did not shut down cleanly", exc_info=True)
            RENDER_EXECUTOR = create_render_executor()
        if RENDER_EXECUTOR is None:
            RENDER_EXECUTOR = create_render_executor()
        return RENDER_EXECUTOR


def shutdown_render_executor() -> None:
    global RENDER_EXECUTOR
    with RENDER_EXECUTOR_LOCK:
        executor = RENDER_EXECUTOR
        RENDER_EXECUTOR = None
    if executor is not None:
        executor.shutdown(wait=False, cancel_futures=True)


atexit.register(shutdown_render_executor)


def render_in_pool(record: PaymentRequest) -> bytes:
    """Render ``record`` in the worker pool, bounded by the render timeout."""
    render = load_render_payment_request()
    executor = get_render_executor()
    try:
        future = executor.submit(render, record)
    except BrokenProcessPool:
        future = restart_render_executor(executor).submit(render, record)
    try:
        return future.result(timeout=RENDER_TIMEOUT_MS / 1000.0)
    except FutureTimeoutError as exc:
        future.cancel()
        raise RenderTimeout(f"Render exceeded timeout of {RENDER_TIMEOUT_MS} ms.") from exc


def parse_json_object(body: bytes) -> Tuple[Optional[Dict[str, Any]], Optional[ValidationError]]:
    try:
        payload = json.loads(body.decode("utf-8"))
    except UnicodeDecodeError:
        return None, (400, {"error": "invalid_encoding", "details": "Body must be UTF-8 encoded JSON."})
    except json.JSONDecodeError as exc:
        return None, (
            400,
            {
                "error": "invalid_json",
                "details": f"{exc.msg} (line {exc.lineno}, column {exc.colno})",
            },
        )

    if not isinstance(payload, dict):
        return None, (400, {"error": "invalid_payload", "details": "JSON root must be an object."})
    return payload, None


def validate_generate_payload(
    body: bytes,
    max_pages: int,
) -> Tuple[Optional[Dict[str, Any]], Optional[ValidationError]]:
    payload, error = parse_json_object(body)
    if error is not None:
        return None, error
    assert payload is not None

    items = payload.get("items")
    if payload.get("client") is None or payload.get("project") is None or not isinstance(items, list):
        return None, (
            400,
            {"error": "Missing required data: client, project, and items array are required"},
        )

    options = payload.get("options")
    if options is not None and not isinstance(options, dict):
        return None, (400, {"error": "invalid_payload", "details": "'options' must be an object."})

    estimated_pages = estimate_page_count(len(items))
    if estimated_pages > max_pages:
        return None, (
            413,
            {
                "error": "payment_request_too_large",
                "details": f"Payment request would render {estimated_pages} pages; maximum is {max_pages}.",
                "max_items": max_items_for_pages(max_pages),
            },
        )

    return payload, None


@dataclass
class Response:
    status: int
    body: bytes
    content_type: str = "application/json"
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def json(cls, status: int, payload: Dict[str, Any]) -> "Response":
        return cls(status, json.dumps(payload).encode("utf-8"))


class PaymentRequestApp:
    """Routes API calls onto a ledger and PDF storage owned for the process lifetime."""

    def __init__(
        self,
        ledger: Ledger,
        storage: PdfStorage,
        renderer: Optional[Renderer] = None,
        max_pages: int = MAX_PAGES_CONFIG,
        max_inflight_renders: int = MAX_INFLIGHT_RENDERS,
        queue_timeout_ms: int = RENDER_QUEUE_TIMEOUT_MS,
    ) -> None:
        self.ledger = ledger
        self.storage = storage
        self.builder = RequestBuilder(ledger)
        self.renderer = renderer or render_in_pool
        self.max_pages = max_pages
        self.queue_timeout_ms = queue_timeout_ms
        self.inflight = threading.BoundedSemaphore(max_inflight_renders)
        self.routes: List[Tuple[str, re.Pattern, Callable[..., Response]]] = [
            ("GET", re.compile(r"^/api/health$"), self.health),
            ("GET", re.compile(r"^/api/clients$"), self.list_clients),
            ("POST", re.compile(r"^/api/clients$"), self.add_client),
            ("POST", re.compile(r"^/api/generate-pdf$"), self.generate_pdf),
            ("GET", re.compile(r"^/api/export-all-pdfs$"), self.export_all_pdfs),
            ("GET", re.compile(r"^/api/pdf/(?P<filename>[^/]+)$"), self.serve_pdf),
            ("GET", re.compile(r"^/api/payment-request/(?P<request_id>[^/]+)$"), self.demo_payment_request),
            ("GET", re.compile(r"^/api/payment-requests$"), self.list_payment_requests),
            ("GET", re.compile(r"^/api/payment-requests/(?P<request_id>[^/]+)$"), self.get_payment_request),
            ("PUT", re.compile(r"^/api/payment-requests/(?P<request_id>[^/]+)/status$"), self.update_status),
            ("DELETE", re.compile(r"^/api/payment-requests/(?P<request_id>[^/]+)$"), self.delete_payment_request),
        ]

    def handle(self, method: str, raw_path: str, body: bytes = b"") -> Response:
        path = urlsplit(raw_path).path
        path_matched = False
        for route_method, pattern, handler in self.routes:
            match = pattern.match(path)
            if match is None:
                continue
            path_matched = True
            if route_method != method:
                continue
            params = {key: unquote(value) for key, value in match.groupdict().items()}
            return handler(body, **params)

        if path_matched:
            return Response.json(405, {"error": "method_not_allowed", "details": f"{method} is not supported here."})
        return Response.json(404, {"error": "not_found", "details": "Unsupported endpoint."})

    def close(self) -> None:
        self.ledger.clear()

    def health(self, body: bytes) -> Response:
        return Response.json(200, {"status": "OK", "message": "Payments Request API is running"})

    def list_clients(self, body: bytes) -> Response:
        return Response.json(200, {"success": True, "data": DEMO_CLIENTS})

    def add_client(self, body: bytes) -> Response:
        payload, error = parse_json_object(body)
        if error is not None:
            return Response.json(*error)
        assert payload is not None

        name, phone, email = payload.get("name"), payload.get("phone"), payload.get("email")
        if not name or not phone or not email:
            return Response.json(
                400,
                {"error": "Missing required fields: name, phone, and email are required"},
            )
        return Response.json(
            200,
            {
                "success": True,
                "message": "Client added successfully",
                "data": {"name": name, "phone": phone, "email": email},
            },
        )

    def generate_pdf(self, body: bytes) -> Response:
        payload, error = validate_generate_payload(body, self.max_pages)
        if error is not None:
            return Response.json(*error)
        assert payload is not None

        try:
            record = self.builder.build_from_payload(
                payload["client"],
                payload["project"],
                payload["items"],
                payload.get("options"),
            )
        except BuildError as exc:
            return Response.json(400, {"error": "Invalid payment request data", "details": str(exc)})

        acquired = self.inflight.acquire(timeout=self.queue_timeout_ms / 1000.0)
        if not acquired:
            self._discard(record)
            return Response.json(
                503,
                {
                    "error": "server_busy",
                    "details": "Render queue is full; retry shortly.",
                    "retry_after_ms": self.queue_timeout_ms,
                },
            )

        try:
            pdf_bytes = self.renderer(record)
            pdf_path = self.storage.save(record.request_number, pdf_bytes)
        except RenderTimeout as exc:
            self._discard(record)
            return Response.json(504, {"error": "Failed to generate PDF", "details": str(exc)})
        except BrokenProcessPool:
            self._discard(record)
            restart_render_executor(get_render_executor())
            return Response.json(
                503,
                {"error": "render_pool_restarting", "details": "Render worker pool restarted; retry shortly."},
            )
        except Exception as exc:
            logger.error("Error generating PDF for %s: %s", record.request_number, exc, exc_info=True)
            self._discard(record)
            return Response.json(500, {"error": "Failed to generate PDF", "details": str(exc)})
        finally:
            self.inflight.release()

        return Response.json(
            200,
            {
                "success": True,
                "message": "PDF generated successfully",
                "data": {
                    "requestNumber": record.request_number,
                    "pdfPath": pdf_path,
                    "total": record.total,
                    "dueDate": isoformat(record.due_date),
                },
            },
        )

    def _discard(self, record: PaymentRequest) -> None:
        # A request without a stored PDF must not hold a sequence number.
        self.ledger.delete(record.id)

    def export_all_pdfs(self, body: bytes) -> Response:
        files = self.storage.list()
        if not files:
            return Response.json(404, {"error": "No PDFs found. Generate some payment requests first."})
        return Response.json(
            200,
            {
                "success": True,
                "message": f"Found {len(files)} PDF files for export",
                "data": {
                    "totalFiles": len(files),
                    "files": [stored.to_dict() for stored in files],
                    "exportDate": isoformat(utc_now()),
                },
            },
        )

    def serve_pdf(self, body: bytes, filename: str) -> Response:
        path = self.storage.resolve(filename)
        if path is None:
            return Response.json(404, {"error": "PDF not found"})
        try:
            with open(path, "rb") as handle:
                blob = handle.read()
        except OSError as exc:
            logger.error("Error serving PDF %s: %s", filename, exc, exc_info=True)
            return Response.json(500, {"error": "Failed to serve PDF", "details": str(exc)})
        return Response(
            200,
            blob,
            content_type="application/pdf",
            headers={"Content-Disposition": f'inline; filename="{filename}"'},
        )

    def demo_payment_request(self, body: bytes, request_id: str) -> Response:
        # The path id is ignored; a sample request is built on a scratch ledger.
        demo = demo_payload()
        record = RequestBuilder(Ledger()).build_from_payload(demo["client"], demo["project"], demo["items"])
        return Response.json(200, {"success": True, "data": record.to_dict()})

    def list_payment_requests(self, body: bytes) -> Response:
        return Response.json(200, {"success": True, "data": [record.to_dict() for record in self.ledger]})

    def get_payment_request(self, body: bytes, request_id: str) -> Response:
        record = self.ledger.find_by_id(request_id)
        if record is None:
            return Response.json(404, {"error": "Payment request not found"})
        return Response.json(200, {"success": True, "data": record.to_dict()})

    def update_status(self, body: bytes, request_id: str) -> Response:
        payload, error = parse_json_object(body)
        if error is not None:
            return Response.json(*error)
        assert payload is not None

        try:
            record = self.ledger.update_status(request_id, str(payload.get("status", "")))
        except ValueError as exc:
            return Response.json(400, {"error": "Invalid status", "details": str(exc)})
        if record is None:
            return Response.json(404, {"error": "Payment request not found"})
        return Response.json(200, {"success": True, "data": record.to_dict()})

    def delete_payment_request(self, body: bytes, request_id: str) -> Response:
        if not self.ledger.delete(request_id):
            return Response.json(404, {"error": "Payment request not found"})
        return Response.json(200, {"success": True, "message": "Payment request deleted"})


class PaymentRequestHandler(BaseHTTPRequestHandler):
    MAX_BODY_BYTES = MAX_BODY_BYTES_CONFIG
    server: "PaymentRequestHTTPServer"

    def _write_response(self, response: Response) -> bool:
        try:
            self.send_response(response.status)
            self.send_header("Content-Type", response.content_type)
            self.send_header("Content-Length", str(len(response.body)))
            for name, value in response.headers.items():
                self.send_header(name, value)
            self.end_headers()
            self.wfile.write(response.body)
            return True
        except Exception as exc:
            if is_client_disconnect(exc):
                return False
            raise

    def _send_json(self, status: int, payload: Dict[str, Any]) -> bool:
        return self._write_response(Response.json(status, payload))

    def _read_body(self) -> Optional[bytes]:
        header = self.headers.get("Content-Length")
        if header is None:
            self._send_json(
                411,
                {"error": "missing_content_length", "details": "Content-Length header is required."},
            )
            return None

        try:
            content_length = int(header)
        except ValueError:
            self._send_json(
                400,
                {"error": "invalid_content_length", "details": "Content-Length must be an integer."},
            )
            return None

        if content_length <= 0:
            self._send_json(400, {"error": "empty_body", "details": "Request body cannot be empty."})
            return None

        if content_length > self.MAX_BODY_BYTES:
            self._send_json(
                413,
                {"error": "payload_too_large", "details": f"Body exceeds {self.MAX_BODY_BYTES} bytes."},
            )
            return None

        try:
            return self.rfile.read(content_length)
        except Exception as exc:
            if is_client_disconnect(exc):
                return None
            raise

    def _dispatch(self, method: str, with_body: bool) -> None:
        body = b""
        if with_body:
            read = self._read_body()
            if read is None:
                return
            body = read
        try:
            response = self.server.app.handle(method, self.path, body)
        except Exception as exc:
            logger.error("Unhandled error for %s %s: %s", method, self.path, exc, exc_info=True)
            response = Response.json(500, {"error": "internal_error", "details": str(exc)})
        self._write_response(response)

    def do_GET(self) -> None:
        self._dispatch("GET", with_body=False)

    def do_POST(self) -> None:
        self._dispatch("POST", with_body=True)

    def do_PUT(self) -> None:
        self._dispatch("PUT", with_body=True)

    def do_DELETE(self) -> None:
        self._dispatch("DELETE", with_body=False)

    def handle_one_request(self) -> None:
        try:
            super().handle_one_request()
        except Exception as exc:
            if is_client_disconnect(exc):
                return
            raise

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


class PaymentRequestHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_address = True
    request_queue_size = LISTEN_BACKLOG

    def __init__(self, server_address: Tuple[str, int], app: PaymentRequestApp) -> None:
        self.app = app
        super().__init__(server_address, PaymentRequestHandler)


def create_app(output_dir: str = OUTPUT_DIR, renderer: Optional[Renderer] = None) -> PaymentRequestApp:
    return PaymentRequestApp(Ledger(), PdfStorage(output_dir), renderer=renderer)


def run(host: str = "0.0.0.0", port: int = 3001, output_dir: str = OUTPUT_DIR) -> None:
    load_render_payment_request()
    get_render_executor()
    app = create_app(output_dir)
    server = PaymentRequestHTTPServer((host, port), app)
    logger.info("Payments Request API listening on http://%s:%s (output: %s)", host, port, app.storage.output_dir)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        server.server_close()
        app.close()
        shutdown_render_executor()
