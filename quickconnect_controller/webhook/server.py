import os
import logging
from flask import Flask, request, jsonify
import base64
import json
from ..aws.association import parse_association_id

logger = logging.getLogger(__name__)

FINALIZER_NAME = "aws.k8s.io/awsconnectqueuequickconnect-finalizer"

# Initialize Flask app
app = Flask(__name__)

def create_error_response(message: str, uid: str = "") -> dict:
    """Create a standardized error response for the admission webhook."""
    return {
        "apiVersion": "admission.k8s.io/v1",
        "kind": "AdmissionReview",
        "response": {
            "uid": uid,
            "allowed": False,
            "status": {"message": message}
        }
    }

def start_webhook_server():
    """Start the webhook server with SSL configuration."""
    try:
        cert_path = os.environ.get('CERT_PATH', '/etc/webhook/certs/tls.crt')
        key_path = os.environ.get('KEY_PATH', '/etc/webhook/certs/tls.key')
        port = int(os.environ.get('WEBHOOK_PORT', 8443))

        if not os.path.exists(cert_path) or not os.path.exists(key_path):
            logger.error("SSL certificate or key not found")
            raise FileNotFoundError("SSL certificate or key not found")

        app.run(
            host='0.0.0.0',
            port=port,
            ssl_context=(cert_path, key_path),
            threaded=True
        )
    except Exception as e:
        logger.error(f"Failed to start webhook server: {str(e)}")
        raise

def import_patch(spec: dict) -> list:
    """
    Patch operations filling instanceId and queueId from spec.importId.

    Raises:
        ValueError: If importId is malformed
    """
    patch = []
    import_id = spec.get("importId")
    if not import_id:
        return patch

    instance_id, queue_id = parse_association_id(import_id)
    if not spec.get("instanceId"):
        patch.append({"op": "add", "path": "/spec/instanceId", "value": instance_id})
    if not spec.get("queueId"):
        patch.append({"op": "add", "path": "/spec/queueId", "value": queue_id})
    return patch

@app.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint for the webhook server."""
    return jsonify({"status": "healthy"}), 200

@app.route('/mutate', methods=['POST'])
def mutate():
    """Handle mutation requests for AWSConnectQueueQuickConnect resources."""
    uid = ""
    try:
        request_info = request.get_json(silent=True)

        if not request_info:
            logger.warning("Received empty request body")
            return jsonify(create_error_response("No request body", uid))

        request_data = request_info.get("request")
        if not request_data:
            logger.warning("No request data in admission review")
            return jsonify(create_error_response("No request data", uid))

        uid = request_data.get("uid", "")

        try:
            association = request_data["object"]
            operation = request_data.get("operation", "").upper()
            metadata = association.setdefault("metadata", {})
            name = metadata.get("name", "unknown")

            labels = dict(metadata.get("labels") or {})
            labels.update({
                "managed-by": "aws-connect-quickconnect-controller"
            })

            patch = [
                {
                    "op": "add",
                    "path": "/metadata/labels",
                    "value": labels
                }
            ]

            if operation in ["CREATE", "UPDATE"]:
                if "deletionTimestamp" in metadata:
                    logger.info(f"Resource {name} is being deleted, skipping finalizer")
                elif FINALIZER_NAME not in (metadata.get("finalizers") or []):
                    if not metadata.get("finalizers"):
                        patch.append({
                            "op": "add",
                            "path": "/metadata/finalizers",
                            "value": [FINALIZER_NAME]
                        })
                    else:
                        patch.append({
                            "op": "add",
                            "path": "/metadata/finalizers/-",
                            "value": FINALIZER_NAME
                        })

            if operation == "CREATE":
                patch.extend(import_patch(association.get("spec") or {}))

            patch_b64 = base64.b64encode(json.dumps(patch).encode()).decode()

            admission_response = {
                "apiVersion": "admission.k8s.io/v1",
                "kind": "AdmissionReview",
                "response": {
                    "uid": uid,
                    "allowed": True,
                    "patchType": "JSONPatch",
                    "patch": patch_b64
                }
            }

            logger.info(f"Successfully processed mutation request for {name}")
            return jsonify(admission_response)

        except KeyError as e:
            error_msg = f"Missing required field in request: {str(e)}"
            logger.error(error_msg)
            return jsonify(create_error_response(error_msg, uid))
        except ValueError as e:
            logger.error(str(e))
            return jsonify(create_error_response(str(e), uid))

    except Exception as e:
        error_msg = f"Error processing mutation request: {str(e)}"
        logger.error(error_msg, exc_info=True)
        return jsonify(create_error_response(error_msg, uid))
