import json
import os
import tempfile
import threading
import unittest
from unittest.mock import patch

from payment_requests.errors import RenderError, RenderTimeout
from payment_requests.ledger import Ledger
from payment_requests.server import PaymentRequestApp, validate_generate_payload
from payment_requests.storage import PdfStorage

FAKE_PDF = b"%PDF-1.4 fake"


def generate_body(**overrides):
    payload = {
        "client": {"name": "Acme", "email": "billing@acme.com"},
        "project": {"name": "Website"},
        "items": [
            {"name": "Design", "quantity": 80, "unitPrice": 75},
            {"name": "Development", "quantity": 120, "unitPrice": 85},
        ],
        "options": {"issueDate": "2024-02-01T09:00:00Z"},
    }
    payload.update(overrides)
    return json.dumps(payload).encode("utf-8")


class PayloadValidationTests(unittest.TestCase):
    def test_accepts_valid_payload(self) -> None:
        payload, error = validate_generate_payload(generate_body(), max_pages=100)

        self.assertIsNone(error)
        assert payload is not None
        self.assertIn("items", payload)

    def test_rejects_invalid_utf8(self) -> None:
        _, error = validate_generate_payload(b"\xff", max_pages=100)

        assert error is not None
        self.assertEqual(error[0], 400)
        self.assertEqual(error[1]["error"], "invalid_encoding")

    def test_rejects_invalid_json(self) -> None:
        _, error = validate_generate_payload(b'{"items":', max_pages=100)

        assert error is not None
        self.assertEqual(error[0], 400)
        self.assertEqual(error[1]["error"], "invalid_json")

    def test_rejects_non_object_root(self) -> None:
        _, error = validate_generate_payload(json.dumps(["bad-root"]).encode("utf-8"), max_pages=100)

        assert error is not None
        self.assertEqual(error[0], 400)
        self.assertEqual(error[1]["error"], "invalid_payload")

    def test_rejects_missing_parts_and_non_array_items(self) -> None:
        for body in (generate_body(client=None), generate_body(project=None), generate_body(items="bad")):
            _, error = validate_generate_payload(body, max_pages=100)
            assert error is not None
            self.assertEqual(error[0], 400)
            self.assertIn("Missing required data", error[1]["error"])

    def test_empty_client_and_project_objects_count_as_present(self) -> None:
        payload, error = validate_generate_payload(generate_body(client={}, project={}), max_pages=100)

        self.assertIsNone(error)
        assert payload is not None
        self.assertEqual(payload["client"], {})

    def test_rejects_payload_exceeding_max_pages(self) -> None:
        with patch("payment_requests.server.estimate_page_count", return_value=11):
            _, error = validate_generate_payload(generate_body(), max_pages=10)

        assert error is not None
        self.assertEqual(error[0], 413)
        self.assertIn("max_items", error[1])


class AppRouteTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.ledger = Ledger()
        self.rendered = []
        self.app = PaymentRequestApp(
            self.ledger,
            PdfStorage(os.path.join(self.tmp.name, "output")),
            renderer=self._fake_render,
        )

    def _fake_render(self, record) -> bytes:
        self.rendered.append(record)
        return FAKE_PDF

    def _json(self, response):
        return json.loads(response.body.decode("utf-8"))

    def test_health(self) -> None:
        response = self.app.handle("GET", "/api/health")
        self.assertEqual(response.status, 200)
        self.assertEqual(self._json(response)["status"], "OK")

    def test_clients_list_and_add(self) -> None:
        listed = self._json(self.app.handle("GET", "/api/clients"))
        self.assertTrue(listed["success"])
        self.assertEqual(len(listed["data"]), 3)

        body = json.dumps({"name": "Jane", "phone": "0400 000 000", "email": "jane@example.com"}).encode()
        added = self.app.handle("POST", "/api/clients", body)
        self.assertEqual(added.status, 200)
        self.assertEqual(self._json(added)["data"]["name"], "Jane")

        missing = self.app.handle("POST", "/api/clients", json.dumps({"name": "Jane"}).encode())
        self.assertEqual(missing.status, 400)

    def test_generate_pdf_builds_renders_and_stores(self) -> None:
        response = self.app.handle("POST", "/api/generate-pdf", generate_body())
        payload = self._json(response)

        self.assertEqual(response.status, 200)
        self.assertEqual(payload["data"]["requestNumber"], "PR-20240201-001")
        self.assertEqual(payload["data"]["total"], 16200)
        self.assertEqual(payload["data"]["dueDate"], "2024-03-02T09:00:00Z")
        self.assertTrue(os.path.isfile(payload["data"]["pdfPath"]))
        self.assertEqual(len(self.ledger), 1)
        self.assertEqual(len(self.rendered), 1)

    def test_generate_pdf_numbers_persist_across_requests(self) -> None:
        self.app.handle("POST", "/api/generate-pdf", generate_body())
        second = self._json(self.app.handle("POST", "/api/generate-pdf", generate_body()))

        self.assertEqual(second["data"]["requestNumber"], "PR-20240201-002")

    def test_generate_pdf_rejects_bad_builder_input(self) -> None:
        response = self.app.handle("POST", "/api/generate-pdf", generate_body(items=[]))

        self.assertEqual(response.status, 400)
        self.assertIn("details", self._json(response))

    def test_generate_pdf_reports_render_failures(self) -> None:
        def failing(record):
            raise RenderError("Failed to generate PDF: boom")

        self.app.renderer = failing
        response = self.app.handle("POST", "/api/generate-pdf", generate_body())

        self.assertEqual(response.status, 500)
        self.assertEqual(self._json(response), {"error": "Failed to generate PDF", "details": "Failed to generate PDF: boom"})
        self.assertEqual(len(self.ledger), 0)

    def test_generate_pdf_reports_render_timeouts(self) -> None:
        def slow(record):
            raise RenderTimeout("Render exceeded timeout of 1000 ms.")

        self.app.renderer = slow
        self.assertEqual(self.app.handle("POST", "/api/generate-pdf", generate_body()).status, 504)
        self.assertEqual(len(self.ledger), 0)

    def test_generate_pdf_busy_queue_leaves_ledger_empty(self) -> None:
        self.app.queue_timeout_ms = 10
        self.app.inflight = threading.BoundedSemaphore(1)
        self.app.inflight.acquire()
        response = self.app.handle("POST", "/api/generate-pdf", generate_body())

        self.assertEqual(response.status, 503)
        self.assertEqual(len(self.ledger), 0)

    def test_failed_renders_do_not_consume_numbers(self) -> None:
        original = self.app.renderer

        def failing(record):
            raise RenderError("Failed to generate PDF: boom")

        self.app.renderer = failing
        self.app.handle("POST", "/api/generate-pdf", generate_body())
        self.app.handle("POST", "/api/generate-pdf", generate_body())
        self.app.renderer = original
        payload = self._json(self.app.handle("POST", "/api/generate-pdf", generate_body()))

        self.assertEqual(payload["data"]["requestNumber"], "PR-20240201-001")
        self.assertEqual(len(self.ledger), 1)

    def test_export_all_pdfs(self) -> None:
        self.assertEqual(self.app.handle("GET", "/api/export-all-pdfs").status, 404)

        self.app.handle("POST", "/api/generate-pdf", generate_body())
        payload = self._json(self.app.handle("GET", "/api/export-all-pdfs"))

        self.assertEqual(payload["data"]["totalFiles"], 1)
        self.assertEqual(payload["data"]["files"][0]["name"], "PR-20240201-001.pdf")
        self.assertEqual(payload["data"]["files"][0]["size"], len(FAKE_PDF))

    def test_serve_pdf(self) -> None:
        self.app.handle("POST", "/api/generate-pdf", generate_body())

        response = self.app.handle("GET", "/api/pdf/PR-20240201-001.pdf")
        self.assertEqual(response.status, 200)
        self.assertEqual(response.content_type, "application/pdf")
        self.assertEqual(response.body, FAKE_PDF)
        self.assertIn("PR-20240201-001.pdf", response.headers["Content-Disposition"])

        self.assertEqual(self.app.handle("GET", "/api/pdf/missing.pdf").status, 404)
        self.assertEqual(self.app.handle("GET", "/api/pdf/..%2Fsecret.pdf").status, 404)

    def test_demo_payment_request_ignores_id_and_ledger(self) -> None:
        response = self.app.handle("GET", "/api/payment-request/anything")
        payload = self._json(response)

        self.assertEqual(response.status, 200)
        self.assertEqual(payload["data"]["client"]["name"], "Sample Client")
        self.assertEqual(payload["data"]["total"], 100)
        self.assertEqual(len(self.ledger), 0)

    def test_ledger_endpoints(self) -> None:
        self.app.handle("POST", "/api/generate-pdf", generate_body())
        record = self.ledger.all()[0]

        listed = self._json(self.app.handle("GET", "/api/payment-requests"))
        self.assertEqual([entry["id"] for entry in listed["data"]], [record.id])

        fetched = self._json(self.app.handle("GET", f"/api/payment-requests/{record.id}"))
        self.assertEqual(fetched["data"]["requestNumber"], record.request_number)

        status_body = json.dumps({"status": "paid"}).encode()
        updated = self.app.handle("PUT", f"/api/payment-requests/{record.id}/status", status_body)
        self.assertEqual(self._json(updated)["data"]["status"], "paid")

        bad_status = json.dumps({"status": "archived"}).encode()
        self.assertEqual(self.app.handle("PUT", f"/api/payment-requests/{record.id}/status", bad_status).status, 400)
        self.assertEqual(self.app.handle("PUT", "/api/payment-requests/missing/status", status_body).status, 404)
        self.assertEqual(self.app.handle("PUT", "/api/payment-requests/missing/status", bad_status).status, 404)

        self.assertEqual(self.app.handle("DELETE", f"/api/payment-requests/{record.id}").status, 200)
        self.assertEqual(self.app.handle("DELETE", f"/api/payment-requests/{record.id}").status, 404)
        self.assertEqual(self.app.handle("GET", f"/api/payment-requests/{record.id}").status, 404)

    def test_unknown_routes_and_methods(self) -> None:
        self.assertEqual(self.app.handle("GET", "/api/nope").status, 404)
        self.assertEqual(self.app.handle("DELETE", "/api/health").status, 405)

    def test_query_strings_are_ignored_for_routing(self) -> None:
        self.assertEqual(self.app.handle("GET", "/api/health?verbose=1").status, 200)


if __name__ == "__main__":
    unittest.main()
