import unittest
import base64
import json
from .server import app, import_patch, FINALIZER_NAME

class TestWebhookServer(unittest.TestCase):
    def setUp(self):
        self.client = app.test_client()

    def review(self, obj, operation="CREATE"):
        return {
            "apiVersion": "admission.k8s.io/v1",
            "kind": "AdmissionReview",
            "request": {
                "uid": "uid-123",
                "operation": operation,
                "object": obj
            }
        }

    def decoded_patch(self, response):
        body = response.get_json()
        self.assertTrue(body["response"]["allowed"])
        return json.loads(base64.b64decode(body["response"]["patch"]))

    def test_health(self):
        response = self.client.get('/health')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {"status": "healthy"})

    def test_mutate_adds_labels_and_finalizer(self):
        obj = {
            "metadata": {"name": "test-association"},
            "spec": {"instanceId": "ins-1", "queueId": "q-1", "quickConnectIds": ["qc-1"]}
        }

        response = self.client.post('/mutate', json=self.review(obj))
        patch = self.decoded_patch(response)

        self.assertEqual(response.get_json()["response"]["uid"], "uid-123")
        self.assertIn({
            "op": "add",
            "path": "/metadata/labels",
            "value": {"managed-by": "aws-connect-quickconnect-controller"}
        }, patch)
        self.assertIn({
            "op": "add",
            "path": "/metadata/finalizers",
            "value": [FINALIZER_NAME]
        }, patch)
        self.assertEqual(len(patch), 2)

    def test_mutate_appends_finalizer(self):
        obj = {
            "metadata": {"name": "test-association", "finalizers": ["other"]},
            "spec": {"instanceId": "ins-1", "queueId": "q-1", "quickConnectIds": ["qc-1"]}
        }

        patch = self.decoded_patch(self.client.post('/mutate', json=self.review(obj, "UPDATE")))

        self.assertIn({
            "op": "add",
            "path": "/metadata/finalizers/-",
            "value": FINALIZER_NAME
        }, patch)

    def test_mutate_skips_finalizer_when_deleting(self):
        obj = {
            "metadata": {"name": "test-association", "deletionTimestamp": "2026-01-01T00:00:00Z"},
            "spec": {}
        }

        patch = self.decoded_patch(self.client.post('/mutate', json=self.review(obj, "UPDATE")))

        self.assertEqual([op["path"] for op in patch], ["/metadata/labels"])

    def test_mutate_expands_import_id(self):
        obj = {
            "metadata": {"name": "imported"},
            "spec": {"importId": "ins-9:q-9"}
        }

        patch = self.decoded_patch(self.client.post('/mutate', json=self.review(obj)))

        self.assertIn({"op": "add", "path": "/spec/instanceId", "value": "ins-9"}, patch)
        self.assertIn({"op": "add", "path": "/spec/queueId", "value": "q-9"}, patch)

    def test_mutate_rejects_malformed_import_id(self):
        obj = {
            "metadata": {"name": "imported"},
            "spec": {"importId": "no-separator"}
        }

        response = self.client.post('/mutate', json=self.review(obj))
        body = response.get_json()

        self.assertFalse(body["response"]["allowed"])
        self.assertIn("no-separator", body["response"]["status"]["message"])

    def test_import_patch_malformed_id(self):
        with self.assertRaises(ValueError):
            import_patch({"importId": "no-separator"})

    def test_import_patch_keeps_explicit_ids(self):
        self.assertEqual(import_patch({"importId": "ins-9:q-9", "instanceId": "ins-9", "queueId": "q-9"}), [])

    def test_mutate_empty_body(self):
        response = self.client.post('/mutate', data="", content_type="application/json")
        body = response.get_json()

        self.assertFalse(body["response"]["allowed"])
        self.assertEqual(body["response"]["status"]["message"], "No request body")

    def test_mutate_missing_object(self):
        review = self.review({})
        del review["request"]["object"]

        body = self.client.post('/mutate', json=review).get_json()

        self.assertFalse(body["response"]["allowed"])
        self.assertIn("object", body["response"]["status"]["message"])

if __name__ == '__main__':
    unittest.main()
