"""OpenCV calibration engine estimating the homography between two cameras."""

from __future__ import annotations

import os
import time
from collections import deque
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Any, Deque, List, Optional, Tuple, Union

import cv2
import numpy as np

from calib.engine import CalibrationEngine
from calib.quality import mssim, psnr
from contracts import FramePair, QualitySnapshot
from contracts.versioning import APP_VERSION, SCHEMA_VERSION
from exceptions import EngineConstructionError, TransformPersistenceError
from log_config.logger import get_logger, log_performance

logger = get_logger(__name__)

# Homographies closer to singular than this are rejected
MIN_HOMOGRAPHY_DET = 1e-6


class MatchMode(IntEnum):
    ORB = 0
    AKAZE = 1
    SIFT = 2

    @classmethod
    def parse(cls, value: Union[int, str]) -> "MatchMode":
        """Accept a mode number or a case-insensitive name."""
        if isinstance(value, str) and not value.strip().isdigit():
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown match mode: {value!r}")
        return cls(int(value))


@dataclass(frozen=True)
class SavedTransform:
    homography: np.ndarray
    image_size: Tuple[int, int]
    match_mode: MatchMode
    correspondences: int
    inliers: int
    created_utc: str


@dataclass
class _Detection:
    keypoints_first: List[Any]
    keypoints_second: List[Any]
    matches: List[Any]
    points_first: np.ndarray
    points_second: np.ndarray


def _to_gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def _to_bgr(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    return image


class CamerasCalib(CalibrationEngine):
    """Feature-based calibration of the transform mapping camera two onto camera one.

    Every fed pair contributes ratio-tested feature matches to a bounded
    correspondence buffer. estimate() fits a RANSAC homography over the
    whole buffer and refines it by least squares on the inliers, so the
    result is stable across repeated calls on unchanged data.
    """

    @dataclass(frozen=True)
    class Settings:
        calib_file: str
        image_size: Tuple[int, int]
        match_mode: int = MatchMode.ORB
        max_correspondences: int = 5000
        ratio_test: float = 0.75
        ransac_reproj_px: float = 3.0
        min_correspondences: int = 12

        @classmethod
        def from_config(cls, config) -> "CamerasCalib.Settings":
            """Build engine settings from a SessionConfig."""
            return cls(
                calib_file=config.calibration.out,
                image_size=config.camera.image_size,
                match_mode=config.calibration.match_mode,
                max_correspondences=config.calibration.max_correspondences,
                ratio_test=config.calibration.ratio_test,
                ransac_reproj_px=config.calibration.ransac_reproj_px,
                min_correspondences=config.calibration.min_correspondences,
            )

    def __init__(self, settings: "CamerasCalib.Settings") -> None:
        width, height = settings.image_size
        if width <= 0 or height <= 0:
            raise EngineConstructionError(f"Invalid image size: {width}x{height}")
        if not settings.calib_file:
            raise EngineConstructionError("Output calibration file name is empty")
        if not 0.0 < settings.ratio_test <= 1.0:
            raise EngineConstructionError(f"Ratio test must be in (0, 1], got {settings.ratio_test}")
        try:
            mode = MatchMode.parse(settings.match_mode)
        except ValueError as e:
            raise EngineConstructionError(str(e)) from e

        try:
            self._detector, norm = self._create_detector(mode)
            self._matcher = cv2.BFMatcher(norm, crossCheck=False)
        except (AttributeError, cv2.error) as e:
            raise EngineConstructionError(f"OpenCV build does not support {mode.name} features: {e}") from e

        self._settings = settings
        self._mode = mode
        self._min_correspondences = max(4, settings.min_correspondences)
        # Rows of (x_first, y_first, x_second, y_second)
        self._correspondences: Deque[Tuple[float, float, float, float]] = deque(
            maxlen=settings.max_correspondences
        )
        self._homography: Optional[np.ndarray] = None
        self._inliers = 0
        self._feeds = 0
        self._last_pair: Optional[FramePair] = None
        self._last_detection: Optional[_Detection] = None
        logger.info(
            f"Calibrator ready: {width}x{height}, {mode.name} features, output {settings.calib_file}"
        )

    @staticmethod
    def _create_detector(mode: MatchMode):
        if mode is MatchMode.ORB:
            return cv2.ORB_create(nfeatures=2000), cv2.NORM_HAMMING
        if mode is MatchMode.AKAZE:
            return cv2.AKAZE_create(), cv2.NORM_HAMMING
        return cv2.SIFT_create(nfeatures=2000), cv2.NORM_L2

    @property
    def settings(self) -> "CamerasCalib.Settings":
        return self._settings

    @property
    def match_mode(self) -> MatchMode:
        return self._mode

    @property
    def has_transform(self) -> bool:
        return self._homography is not None

    @property
    def homography(self) -> Optional[np.ndarray]:
        return None if self._homography is None else self._homography.copy()

    @property
    def correspondence_count(self) -> int:
        return len(self._correspondences)

    @property
    def inlier_count(self) -> int:
        return self._inliers

    @property
    def feed_count(self) -> int:
        return self._feeds

    def _size_matches(self, pair: FramePair) -> bool:
        expected = tuple(self._settings.image_size)
        for image in pair.images:
            if (image.shape[1], image.shape[0]) != expected:
                logger.warning(
                    f"Frame size {image.shape[1]}x{image.shape[0]} does not match "
                    f"calibration size {expected[0]}x{expected[1]}"
                )
                return False
        return True

    def _detect(self, pair: FramePair) -> _Detection:
        """Detect and ratio-test matches for a pair, cached for the last pair seen."""
        if pair is self._last_pair and self._last_detection is not None:
            return self._last_detection

        first, second = pair.images
        kp_first, desc_first = self._detector.detectAndCompute(_to_gray(first), None)
        kp_second, desc_second = self._detector.detectAndCompute(_to_gray(second), None)
        kp_first = list(kp_first or [])
        kp_second = list(kp_second or [])

        good = []
        if desc_first is not None and desc_second is not None and len(desc_first) >= 2 and len(desc_second) >= 2:
            for candidates in self._matcher.knnMatch(desc_first, desc_second, k=2):
                if len(candidates) < 2:
                    continue
                best, runner_up = candidates
                if best.distance < self._settings.ratio_test * runner_up.distance:
                    good.append(best)

        points_first = np.float32([kp_first[m.queryIdx].pt for m in good]).reshape(-1, 2)
        points_second = np.float32([kp_second[m.trainIdx].pt for m in good]).reshape(-1, 2)

        detection = _Detection(kp_first, kp_second, good, points_first, points_second)
        self._last_pair = pair
        self._last_detection = detection
        return detection

    def feed(self, pair: FramePair) -> None:
        if not self._size_matches(pair):
            return
        detection = self._detect(pair)
        for (x1, y1), (x2, y2) in zip(detection.points_first, detection.points_second):
            self._correspondences.append((float(x1), float(y1), float(x2), float(y2)))
        self._feeds += 1
        logger.debug(
            f"Fed pair {self._feeds}: {len(detection.matches)} matches, "
            f"{len(self._correspondences)} buffered"
        )

    def matches(self, pair: FramePair) -> np.ndarray:
        first, second = (_to_bgr(image) for image in pair.images)
        if not self._size_matches(pair):
            return np.hstack([first, second]) if first.shape[0] == second.shape[0] else first
        detection = self._detect(pair)
        return cv2.drawMatches(
            first,
            detection.keypoints_first,
            second,
            detection.keypoints_second,
            detection.matches,
            None,
            matchColor=(0, 255, 0),
            singlePointColor=(255, 0, 0),
            flags=cv2.DrawMatchesFlags_DEFAULT,
        )

    def estimate(self) -> bool:
        count = len(self._correspondences)
        if count < self._min_correspondences:
            logger.warning(
                f"Not enough correspondences to estimate a transform ({count} < {self._min_correspondences})"
            )
            return False

        start = time.perf_counter()
        data = np.array(self._correspondences, dtype=np.float32)
        dst = data[:, 0:2]
        src = data[:, 2:4]
        try:
            H, mask = cv2.findHomography(src, dst, cv2.RANSAC, self._settings.ransac_reproj_px)
            if H is None or mask is None:
                logger.warning("Homography estimation failed; keeping previous transform")
                return False
            inliers = mask.ravel().astype(bool)
            if int(inliers.sum()) >= 4:
                H_ls, _ = cv2.findHomography(src[inliers], dst[inliers], 0)
                if H_ls is not None:
                    H = H_ls
        except cv2.error as e:
            logger.warning(f"Homography estimation raised: {e}")
            return False

        if abs(H[2, 2]) < 1e-12 or abs(np.linalg.det(H / H[2, 2])) < MIN_HOMOGRAPHY_DET:
            logger.warning("Estimated homography is degenerate; keeping previous transform")
            return False

        self._homography = H / H[2, 2]
        self._inliers = int(inliers.sum())
        log_performance("estimate", (time.perf_counter() - start) * 1000.0, threshold_ms=500.0)
        logger.info(
            f"Transform estimated from {count} correspondences "
            f"({self._inliers} inliers, {self._inliers / count:.0%})"
        )
        return True

    def evaluate(self, pair: FramePair) -> Tuple[QualitySnapshot, np.ndarray]:
        first, second = (_to_bgr(image) for image in pair.images)
        if self._homography is None or not self._size_matches(pair):
            if first.shape[0] != second.shape[0]:
                return QualitySnapshot.empty(), first
            return QualitySnapshot.empty(), np.hstack([first, second])

        H = self._homography
        h, w = first.shape[:2]
        ones = np.full((h, w), 255, dtype=np.uint8)

        # Quality is measured in the first camera's image plane
        warped_in_first = cv2.warpPerspective(second, H, (w, h))
        overlap = cv2.warpPerspective(ones, H, (w, h), flags=cv2.INTER_NEAREST) > 0
        if overlap.any():
            quality = QualitySnapshot(
                psnr=psnr(first, warped_in_first, overlap),
                mssim=mssim(first, warped_in_first, overlap),
            )
        else:
            quality = QualitySnapshot.empty()

        return quality, self._compose(first, second, H)

    def _compose(self, first: np.ndarray, second: np.ndarray, H: np.ndarray) -> np.ndarray:
        """Warp the second image next to the first on a bounded canvas."""
        h, w = first.shape[:2]
        corners = np.float32([[0, 0], [w, 0], [w, h], [0, h]]).reshape(-1, 1, 2)
        warped_corners = cv2.perspectiveTransform(corners, H)
        all_corners = np.concatenate([corners, warped_corners], axis=0).reshape(-1, 2)

        # Canvas stays within [-w, 2w] x [-h/2, 3h/2] of the first image
        x_min = int(max(np.floor(all_corners[:, 0].min()), -w))
        y_min = int(max(np.floor(all_corners[:, 1].min()), -h // 2))
        x_max = int(min(np.ceil(all_corners[:, 0].max()), 2 * w))
        y_max = int(min(np.ceil(all_corners[:, 1].max()), h + h // 2))
        x_min, y_min = min(x_min, 0), min(y_min, 0)
        x_max, y_max = max(x_max, w), max(y_max, h)

        translation = np.array([[1, 0, -x_min], [0, 1, -y_min], [0, 0, 1]], dtype=np.float64)
        size = (x_max - x_min, y_max - y_min)
        canvas = cv2.warpPerspective(second, translation @ H, size)
        valid = cv2.warpPerspective(
            np.full((h, w), 255, dtype=np.uint8), translation @ H, size, flags=cv2.INTER_NEAREST
        ) > 0

        ox, oy = -x_min, -y_min
        region = canvas[oy : oy + h, ox : ox + w]
        overlap = valid[oy : oy + h, ox : ox + w]
        blended = ((first.astype(np.uint16) + region.astype(np.uint16)) // 2).astype(np.uint8)
        region[...] = np.where(overlap[:, :, np.newaxis], blended, first)
        return canvas

    def save(self) -> bool:
        if self._homography is None:
            logger.warning("No transform estimated yet; nothing to save")
            return False

        path = Path(self._settings.calib_file)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TransformPersistenceError(f"Cannot create directory for {path}: {e}") from e

        # FileStorage picks the format from the suffix, so it must stay last
        tmp_path = path.with_name(f".{path.stem}.tmp{path.suffix}")
        try:
            self._write_transform(tmp_path)
            os.replace(tmp_path, path)
        except (cv2.error, OSError) as e:
            tmp_path.unlink(missing_ok=True)
            raise TransformPersistenceError(f"Failed to write transform to {path}: {e}") from e

        logger.info(f"Transform saved to {path}")
        return True

    def _write_transform(self, path: Path) -> None:
        fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE)
        if not fs.isOpened():
            raise OSError(f"Cannot open {path} for writing")
        try:
            width, height = self._settings.image_size
            fs.write("schema_version", SCHEMA_VERSION)
            fs.write("app_version", APP_VERSION)
            fs.write("created_utc", time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()))
            fs.write("image_width", int(width))
            fs.write("image_height", int(height))
            fs.write("match_mode", int(self._mode))
            fs.write("correspondences", len(self._correspondences))
            fs.write("inliers", self._inliers)
            fs.write("homography", self._homography)
        finally:
            fs.release()

    def reset(self) -> None:
        self._correspondences.clear()
        self._homography = None
        self._inliers = 0
        self._feeds = 0
        self._last_pair = None
        self._last_detection = None
        logger.info("Calibration reset")


def load_transform(path: Union[str, Path]) -> SavedTransform:
    """Read a transform written by CamerasCalib.save.

    Raises:
        TransformPersistenceError: If the file is missing or malformed
    """
    path = Path(path)
    if not path.exists():
        raise TransformPersistenceError(f"Transform file not found: {path}")

    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
    if not fs.isOpened():
        raise TransformPersistenceError(f"Cannot open {path} for reading")
    try:
        homography = fs.getNode("homography").mat()
        if homography is None or homography.shape != (3, 3):
            raise TransformPersistenceError(f"{path} does not contain a 3x3 homography")
        return SavedTransform(
            homography=homography,
            image_size=(int(fs.getNode("image_width").real()), int(fs.getNode("image_height").real())),
            match_mode=MatchMode(int(fs.getNode("match_mode").real())),
            correspondences=int(fs.getNode("correspondences").real()),
            inliers=int(fs.getNode("inliers").real()),
            created_utc=fs.getNode("created_utc").string(),
        )
    finally:
        fs.release()
