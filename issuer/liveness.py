# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Liveness proofs gating the issuance through /issue-with-proof.

The proof is produced by the wallet's face capture: an overall score, the frames
it was computed on and some capture details. Checks run in order and stop at the
first failure:

1. score, confidence & live flag against the configured thresholds
2. freshness of the proof timestamp (epoch milliseconds)
3. frames: count, image data, face detection & bounding boxes, average face confidence
4. anti-spoofing: device info of the capturing client

Missing motion or blinks only get logged.
"""

import base64
import binascii
import logging
import math

from pydantic import BaseModel, Field

from common import errors
from common import parsing as prs
from common.clock import Clock, SystemClock

from issuer.logging import IssuerOperationsLogEntry

_logger = logging.getLogger(__name__)

MIN_FRAME_COUNT = 3
MAX_FRAME_COUNT = 10
MIN_FACE_CONFIDENCE = 0.5
MAX_FUTURE_SKEW = 60
"""Seconds a proof timestamp may lie in the future"""
MIN_MOTION = 3.0
"""Pixels the face has to move between two frames"""
FRAME_AREA = 640 * 480
MIN_FACE_RATIO = 0.1
MAX_FACE_RATIO = 0.8
SUSPICIOUS_USER_AGENTS = ("bot", "crawler", "scraper")


class BoundingBox(BaseModel):
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2


class LivenessFrame(BaseModel):
    timestamp: int | None = None
    image_data: str | None = None
    """base64 encoded image"""
    face_detected: bool | None = None
    face_confidence: float | None = None
    bounding_box: BoundingBox | None = None


class LivenessDetails(BaseModel):
    face_detected: bool | None = None
    motion_detected: bool | None = None
    blink_detected: bool | None = None
    frame_count: int | None = None
    average_confidence: float | None = None
    processing_time_ms: int | None = None


class DeviceInfo(BaseModel):
    user_agent: str | None = None
    screen_resolution: str | None = None
    timestamp: int | None = None


class LivenessProof(BaseModel):
    score: float
    is_live: bool
    confidence: float
    timestamp: int = Field(description="Capture time in milliseconds since 1.1.1970")
    frames: list[LivenessFrame] = Field(min_length=1)
    details: LivenessDetails
    device_info: DeviceInfo | None = None


def _frame_failure(frame: LivenessFrame) -> str | None:
    if frame.timestamp is None:
        return "Frame missing timestamp"
    if prs.is_blank(frame.image_data):
        return "Frame missing image data"
    try:
        base64.b64decode(frame.image_data, validate=True)
    except binascii.Error:
        return "Frame image data is not valid base64"
    if frame.face_detected:
        if frame.face_confidence is None or frame.face_confidence < MIN_FACE_CONFIDENCE:
            return "Face detected but confidence is too low"
        if frame.bounding_box is not None:
            box = frame.bounding_box
            if box.width <= 0 or box.height <= 0:
                return "Bounding box has invalid dimensions"
            ratio = box.width * box.height / FRAME_AREA
            if ratio > MAX_FACE_RATIO:
                return "Face size is too large"
            if ratio < MIN_FACE_RATIO:
                return "Face size is too small"
    return None


def _has_motion(frames: list[LivenessFrame]) -> bool:
    boxes = [frame.bounding_box for frame in frames]
    for previous, current in zip(boxes, boxes[1:]):
        if previous is not None and current is not None and math.dist(previous.center, current.center) > MIN_MOTION:
            return True
    return False


class LivenessValidator:
    def __init__(
        self,
        min_score: float = 0.7,
        min_confidence: float = 0.6,
        max_age: float = 300,
        clock: Clock | None = None,
    ) -> None:
        self._min_score = min_score
        self._min_confidence = min_confidence
        self._max_age = max_age
        self._clock = clock or SystemClock()

    def _check_score(self, proof: LivenessProof) -> str | None:
        if proof.score < self._min_score:
            return f"Liveness score {proof.score:.2f} is below minimum threshold {self._min_score:.2f}"
        if proof.confidence < self._min_confidence:
            return f"Confidence {proof.confidence:.2f} is below minimum threshold {self._min_confidence:.2f}"
        if not proof.is_live:
            return "Liveness check indicates the subject is not live"
        return None

    def _check_timestamp(self, proof: LivenessProof) -> str | None:
        now = self._clock.now()
        captured_at = proof.timestamp / 1000
        if now - captured_at > self._max_age:
            return f"Liveness proof is too old: {int(now - captured_at)}s (max: {self._max_age}s)"
        if captured_at > now + MAX_FUTURE_SKEW:
            return "Liveness proof timestamp is in the future"
        return None

    def _check_frames(self, proof: LivenessProof) -> str | None:
        if not MIN_FRAME_COUNT <= len(proof.frames) <= MAX_FRAME_COUNT:
            return f"Frame count {len(proof.frames)} outside of {MIN_FRAME_COUNT}-{MAX_FRAME_COUNT}"
        valid_frames = [frame for frame in proof.frames if _frame_failure(frame) is None]
        if len(valid_frames) < MIN_FRAME_COUNT:
            return f"Insufficient valid frames: {len(valid_frames)} (minimum: {MIN_FRAME_COUNT})"
        average_confidence = sum(frame.face_confidence or 0.0 for frame in valid_frames) / len(valid_frames)
        if average_confidence < self._min_confidence:
            return f"Average frame confidence {average_confidence:.2f} is below threshold {self._min_confidence:.2f}"
        return None

    def _check_spoofing(self, proof: LivenessProof) -> str | None:
        if proof.details.motion_detected is False or proof.details.blink_detected is False or not _has_motion(proof.frames):
            _logger.warning("Liveness proof without motion or blink, possible spoofing attempt")
        if proof.device_info is not None:
            user_agent = (proof.device_info.user_agent or "").strip().lower()
            if not user_agent:
                return "Missing user agent information"
            if any(marker in user_agent for marker in SUSPICIOUS_USER_AGENTS):
                return "Suspicious user agent detected"
        return None

    def validate(self, proof: LivenessProof) -> errors.Result[LivenessProof]:
        for check in (self._check_score, self._check_timestamp, self._check_frames, self._check_spoofing):
            failure = check(proof)
            if failure is not None:
                _logger.info(
                    IssuerOperationsLogEntry(
                        message=f"Liveness proof rejected: {failure}",
                        status=IssuerOperationsLogEntry.Status.error,
                        operation=IssuerOperationsLogEntry.Operation.issuance,
                        step=IssuerOperationsLogEntry.Step.liveness_check,
                        error_code=errors.LivenessCheckFailedError.error_code,
                    )
                )
                return errors.Err(errors.LivenessCheckFailedError(additional_error_description=failure))
        return errors.Ok(proof)
