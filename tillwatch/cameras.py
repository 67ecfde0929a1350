"""
Camera / DVR registry.

Configurations live in process memory. Connectivity tests are simulated: the
store's known DVR always answers, any other host gets a random result. No
real DVR protocol is spoken.
"""
import logging
import random
import uuid
from datetime import datetime
from typing import Any, Dict, List

from .errors import NotFoundError, ValidationError

REQUIRED_FIELDS = ("name", "ip", "password")
EDITABLE_FIELDS = ("name", "ip", "port", "username", "password", "channel")
SIMULATED_SUCCESS_RATE = 0.7
KNOWN_DVR_CHANNELS = 16


class CameraRegistry:

    def __init__(self, known_host: str = None, rng: random.Random = None):
        self.known_host = (known_host or "").lower()
        self.rng = rng or random.Random()
        self._cameras: Dict[str, Dict[str, Any]] = {}

    def list(self) -> List[Dict[str, Any]]:
        return [self._public(c) for c in self._cameras.values()]

    def add(self, config: Dict[str, Any]) -> Dict[str, Any]:
        missing = [f for f in REQUIRED_FIELDS if not str(config.get(f) or "").strip()]
        if missing:
            raise ValidationError(f"Missing required camera fields: {', '.join(missing)}")

        camera = {
            "id": uuid.uuid4().hex,
            "name": str(config["name"]).strip(),
            "ip": str(config["ip"]).strip(),
            "port": self._int(config.get("port"), 8000, "port"),
            "username": str(config.get("username") or "admin"),
            "password": str(config["password"]),
            "channel": self._int(config.get("channel"), 1, "channel"),
            "status": "disconnected",
        }
        self._cameras[camera["id"]] = camera
        logging.info(f"Camera {camera['name']} ({camera['ip']}) added")
        return self._public(camera)

    def update(self, camera_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        camera = self._get(camera_id)
        for field in EDITABLE_FIELDS:
            if field not in changes:
                continue
            if field in ("port", "channel"):
                camera[field] = self._int(changes[field], camera[field], field)
            elif field in REQUIRED_FIELDS and not str(changes[field] or "").strip():
                raise ValidationError(f"Camera {field} cannot be empty")
            else:
                camera[field] = str(changes[field])
        return self._public(camera)

    def remove(self, camera_id: str) -> None:
        self._get(camera_id)
        del self._cameras[camera_id]

    def test(self, camera_id: str) -> Dict[str, Any]:
        camera = self._get(camera_id)
        connected = self._probe(camera["ip"])
        camera["status"] = "connected" if connected else "disconnected"
        logging.info(f"Camera {camera['name']} test: {camera['status']}")
        return {
            "connected": connected,
            "message": "Connection successful" if connected else "Unable to reach device",
            "camera": self._public(camera),
        }

    def test_feed(self, config: Dict[str, Any]) -> Dict[str, Any]:
        ip = str(config.get("ip") or "").strip()
        if not ip:
            raise ValidationError("Missing required camera fields: ip")
        port = self._int(config.get("port"), 80, "port")
        channel = self._int(config.get("channel"), 1, "channel")
        timestamp = datetime.now().isoformat()

        if not self._probe(ip):
            return {
                "success": False,
                "message": f"Could not connect to DVR at {ip}:{port}",
                "timestamp": timestamp,
            }
        return {
            "success": True,
            "message": f"Feed available on channel {channel}",
            "feedUrl": f"http://{ip}:{port}/ISAPI/Streaming/channels/{channel}01/picture",
            "streamUrl": f"rtsp://{ip}:554/Streaming/Channels/{channel}01",
            "system": "DVR",
            "channels": KNOWN_DVR_CHANNELS if ip.lower() == self.known_host else 4,
            "timestamp": timestamp,
        }

    def _probe(self, host: str) -> bool:
        if self.known_host and host.lower() == self.known_host:
            return True
        return self.rng.random() < SIMULATED_SUCCESS_RATE

    def _get(self, camera_id: str) -> Dict[str, Any]:
        camera = self._cameras.get(camera_id)
        if not camera:
            raise NotFoundError(f"Camera {camera_id} not found")
        return camera

    @staticmethod
    def _int(value: Any, default: int, field: str) -> int:
        if value is None or value == "":
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"Camera {field} must be a number")

    @staticmethod
    def _public(camera: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in camera.items() if k != "password"}
