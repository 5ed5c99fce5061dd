"""Photo quality analyzer.

Scores six metrics of a decoded farm photo, turns the scores into typed issues
and grouped improvement suggestions, and applies the usability gate:

``overall >= 0.4 and sharpness >= 0.3 and resolution >= 0.4``
"""

from __future__ import annotations

import numpy as np
from loguru import logger

from landlens.config import DEFAULT_CONFIG, QualityThresholds
from landlens.core.models import (
    ImprovementSuggestions,
    IssueType,
    MetricAssessment,
    MetricStatus,
    QualityAssessment,
    QualityIssue,
    Severity,
)
from landlens.core.outcome import guard
from landlens.utils.raster import Raster, decode_raster


def _grade(score: float, levels: tuple[float, float, float]) -> MetricStatus:
    excellent, good, fair = levels
    if score >= excellent:
        return MetricStatus.EXCELLENT
    if score >= good:
        return MetricStatus.GOOD
    if score >= fair:
        return MetricStatus.FAIR
    return MetricStatus.POOR


def _grey_plane(raster: Raster) -> np.ndarray:
    return raster.greyscale().pixels[:, :, 0].astype(np.float64)


def sharpness_score(raster: Raster, divisor: float = 10000.0) -> float:
    """Variance of right/below neighbour differences, scaled to ``[0, 1]``.

    The last row and column have no full neighbourhood and are skipped.
    """
    grey = _grey_plane(raster)
    if grey.shape[0] < 2 or grey.shape[1] < 2:
        return 0.0
    core = grey[:-1, :-1]
    diff = np.abs(core - grey[:-1, 1:]) + np.abs(core - grey[1:, :-1])
    return float(min(1.0, diff.var() / divisor))


def brightness_score(raster: Raster) -> float:
    """Mean of per-channel means over 255."""
    means, _ = raster.channel_stats()
    return float(means.mean() / 255.0)


def contrast_score(raster: Raster, divisor: float = 128.0) -> float:
    """Mean channel standard deviation over ``divisor``, capped at 1."""
    _, stds = raster.channel_stats()
    return float(min(1.0, stds.mean() / divisor))


def color_balance_score(
    raster: Raster, divisor: float = 128.0, grayscale_score: float = 0.5
) -> float:
    """How close the channel means sit to their grand mean."""
    if raster.channels < 3:
        return grayscale_score
    means, _ = raster.channel_stats()
    rgb = means[:3]
    deviation = np.abs(rgb - rgb.mean()).mean()
    return float(max(0.0, 1.0 - deviation / divisor))


def noise_score(raster: Raster, sigma: float = 0.5, divisor: float = 50.0) -> float:
    """Inverted mean difference to a lightly blurred copy (1.0 is clean)."""
    grey = raster.greyscale()
    blurred = grey.blur(sigma)
    mean_diff = np.abs(grey.as_float() - blurred.as_float()).mean()
    return float(max(0.0, 1.0 - mean_diff / divisor))


def resolution_score(
    width: int,
    height: int,
    steps: tuple[tuple[int, float], ...] = DEFAULT_CONFIG.quality.resolution_steps,
    floor: float = 0.2,
) -> float:
    """Score for the pixel count from a step table.

    Parameters
    ----------
    width, height : int
        Raster dimensions in pixels.
    steps : tuple[tuple[int, float], ...]
        ``(minimum pixel count, score)`` pairs checked top-down.
    floor : float
        Score when no step matches.

    Returns
    -------
    float
        Resolution score in ``[0, 1]``.
    """
    total_pixels = width * height
    for min_pixels, score in steps:
        if total_pixels >= min_pixels:
            return score
    return floor


class QualityAnalyzer:
    """Assess whether a photo is good enough for land analysis.

    Parameters
    ----------
    thresholds : QualityThresholds, optional
        Metric divisors, status levels and the usability gate.
    """

    def __init__(self, thresholds: QualityThresholds | None = None):
        self.thresholds = thresholds or DEFAULT_CONFIG.quality

    def assess(self, image: Raster | bytes) -> QualityAssessment:
        """Score a photo.

        Parameters
        ----------
        image : Raster | bytes
            Decoded raster or encoded image bytes.

        Returns
        -------
        QualityAssessment
            Always returned; undecodable or sub-2x2 inputs give the all-zero
            assessment with a single ``resolution`` issue.
        """
        outcome = guard(
            "quality assessment",
            lambda: self._assess(image),
            _failed_assessment,
        )
        return outcome.value

    def _assess(self, image: Raster | bytes) -> QualityAssessment:
        raster = decode_raster(image) if isinstance(image, bytes) else image
        if raster.width < 2 or raster.height < 2:
            raise ValueError(
                f"raster {raster.width}x{raster.height} is too small to sample"
            )
        t = self.thresholds

        sharpness = self._assess_sharpness(sharpness_score(raster, t.sharpness_divisor))
        brightness = self._assess_brightness(brightness_score(raster))
        contrast = self._assess_contrast(contrast_score(raster, t.contrast_divisor))
        resolution = self._assess_resolution(
            resolution_score(
                raster.width, raster.height, t.resolution_steps, t.resolution_floor
            ),
            raster.width,
            raster.height,
        )
        color_balance = self._assess_color_balance(
            color_balance_score(
                raster, t.color_balance_divisor, t.grayscale_color_balance
            )
        )
        noise = self._assess_noise(
            noise_score(raster, t.noise_blur_sigma, t.noise_divisor)
        )

        issues = self._collect_issues(
            sharpness, brightness, contrast, resolution, color_balance, noise
        )
        scores = [
            m.score
            for m in (sharpness, brightness, contrast, resolution, color_balance, noise)
        ]
        overall_score = float(np.mean(scores))
        usable = (
            overall_score >= t.usable_overall
            and sharpness.score >= t.usable_sharpness
            and resolution.score >= t.usable_resolution
        )

        assessment = QualityAssessment(
            overall_score=overall_score,
            issues=issues,
            usable_for_analysis=usable,
            recommended_actions=_recommended_actions(usable, issues),
            sharpness=sharpness,
            brightness=brightness,
            contrast=contrast,
            resolution=resolution,
            color_balance=color_balance,
            noise=noise,
            improvement_suggestions=_improvement_suggestions(
                sharpness, brightness, contrast, resolution, color_balance, noise,
                dark_below=t.brightness_dark,
            ),
        )
        logger.debug(
            f"Quality {overall_score:.3f} usable={usable} issues={len(issues)}"
        )
        return assessment

    # -- per-metric grading ---------------------------------------------------

    def _assess_sharpness(self, score: float) -> MetricAssessment:
        status = _grade(score, self.thresholds.sharpness_levels)
        feedback = {
            MetricStatus.EXCELLENT: "Image is very sharp and clear",
            MetricStatus.GOOD: "Image has good sharpness",
            MetricStatus.FAIR: "Image sharpness is acceptable but could be improved",
            MetricStatus.POOR: "Image is blurry and may affect analysis accuracy",
        }[status]
        return MetricAssessment(score, status, feedback)

    def _assess_brightness(self, score: float) -> MetricAssessment:
        t = self.thresholds
        for window, status, feedback in (
            (t.brightness_excellent, MetricStatus.EXCELLENT, "Image has optimal brightness"),
            (t.brightness_good, MetricStatus.GOOD, "Image brightness is good"),
            (t.brightness_fair, MetricStatus.FAIR, "Image brightness is acceptable"),
        ):
            low, high = window
            if low <= score <= high:
                return MetricAssessment(score, status, feedback)
        feedback = "Image is too dark" if score < t.brightness_dark else "Image is too bright"
        return MetricAssessment(score, MetricStatus.POOR, feedback)

    def _assess_contrast(self, score: float) -> MetricAssessment:
        status = _grade(score, self.thresholds.contrast_levels)
        feedback = {
            MetricStatus.EXCELLENT: "Image has excellent contrast",
            MetricStatus.GOOD: "Image has good contrast",
            MetricStatus.FAIR: "Image contrast is acceptable",
            MetricStatus.POOR: "Image has poor contrast, details may be hard to distinguish",
        }[status]
        return MetricAssessment(score, status, feedback)

    def _assess_resolution(self, score: float, width: int, height: int) -> MetricAssessment:
        status = _grade(score, self.thresholds.resolution_levels)
        dims = f"{width}x{height}"
        feedback = {
            MetricStatus.EXCELLENT: f"High resolution ({dims}) perfect for detailed analysis",
            MetricStatus.GOOD: f"Good resolution ({dims}) suitable for analysis",
            MetricStatus.FAIR: f"Moderate resolution ({dims}) may limit analysis detail",
            MetricStatus.POOR: f"Low resolution ({dims}) may significantly affect analysis accuracy",
        }[status]
        return MetricAssessment(score, status, feedback)

    def _assess_color_balance(self, score: float) -> MetricAssessment:
        status = _grade(score, self.thresholds.color_balance_levels)
        feedback = {
            MetricStatus.EXCELLENT: "Image has excellent color balance",
            MetricStatus.GOOD: "Image has good color balance",
            MetricStatus.FAIR: "Image color balance is acceptable",
            MetricStatus.POOR: "Image has poor color balance, may affect land feature identification",
        }[status]
        return MetricAssessment(score, status, feedback)

    def _assess_noise(self, score: float) -> MetricAssessment:
        status = _grade(score, self.thresholds.noise_levels)
        feedback = {
            MetricStatus.EXCELLENT: "Image has minimal noise",
            MetricStatus.GOOD: "Image has low noise levels",
            MetricStatus.FAIR: "Image has moderate noise levels",
            MetricStatus.POOR: "Image has high noise levels that may affect analysis",
        }[status]
        return MetricAssessment(score, status, feedback)

    def _collect_issues(
        self,
        sharpness: MetricAssessment,
        brightness: MetricAssessment,
        contrast: MetricAssessment,
        resolution: MetricAssessment,
        color_balance: MetricAssessment,
        noise: MetricAssessment,
    ) -> tuple[QualityIssue, ...]:
        issues: list[QualityIssue] = []
        if sharpness.status is MetricStatus.POOR:
            issues.append(QualityIssue(
                IssueType.BLUR, Severity.HIGH,
                "Image appears blurry or out of focus",
                "Hold camera steady and ensure proper focus on the land area",
                0.9,
            ))
        elif sharpness.status is MetricStatus.FAIR:
            issues.append(QualityIssue(
                IssueType.BLUR, Severity.MEDIUM,
                "Image could be sharper for better analysis",
                "Try to hold camera more steady or use autofocus",
                0.7,
            ))

        if brightness.status is MetricStatus.POOR:
            if brightness.score < self.thresholds.brightness_dark:
                issues.append(QualityIssue(
                    IssueType.LIGHTING, Severity.HIGH,
                    "Image is too dark",
                    "Take photo in better lighting or adjust camera exposure",
                    0.8,
                ))
            else:
                issues.append(QualityIssue(
                    IssueType.EXPOSURE, Severity.HIGH,
                    "Image is overexposed",
                    "Reduce exposure or avoid direct sunlight",
                    0.8,
                ))

        if contrast.status is MetricStatus.POOR:
            issues.append(QualityIssue(
                IssueType.LIGHTING, Severity.MEDIUM,
                "Image has poor contrast, making details hard to distinguish",
                "Take photo during golden hour (early morning/late afternoon) for better contrast",
                0.7,
            ))

        if resolution.status is MetricStatus.POOR:
            issues.append(QualityIssue(
                IssueType.RESOLUTION, Severity.HIGH,
                "Image resolution is too low for detailed analysis",
                "Use higher camera resolution settings or get closer to the land area",
                0.9,
            ))

        if color_balance.status is MetricStatus.POOR:
            issues.append(QualityIssue(
                IssueType.COLOR_BALANCE, Severity.MEDIUM,
                "Image has poor color balance affecting land feature identification",
                "Adjust white balance settings or take photo in natural daylight",
                0.6,
            ))

        if noise.status is MetricStatus.POOR:
            issues.append(QualityIssue(
                IssueType.NOISE, Severity.MEDIUM,
                "Image has significant noise affecting clarity",
                "Use lower ISO settings or take photo in better lighting",
                0.7,
            ))
        return tuple(issues)


def _recommended_actions(
    usable: bool, issues: tuple[QualityIssue, ...]
) -> tuple[str, ...]:
    issue_types = {issue.type for issue in issues}
    actions: list[str] = []
    if not usable:
        actions.append("Retake photo with better quality for accurate analysis")
    if IssueType.BLUR in issue_types:
        actions.append("Hold camera steady and ensure proper focus")
    if IssueType.LIGHTING in issue_types:
        actions.append("Take photo in better lighting conditions")
    if IssueType.RESOLUTION in issue_types:
        actions.append("Use higher resolution camera settings")
    return tuple(actions)


def _improvement_suggestions(
    sharpness: MetricAssessment,
    brightness: MetricAssessment,
    contrast: MetricAssessment,
    resolution: MetricAssessment,
    color_balance: MetricAssessment,
    noise: MetricAssessment,
    dark_below: float = 0.3,
) -> ImprovementSuggestions:
    weak = (MetricStatus.POOR, MetricStatus.FAIR)
    immediate: list[str] = []
    technical: list[str] = []
    environmental: list[str] = []

    if sharpness.status in weak:
        immediate.append("Hold camera with both hands and brace against your body")
        immediate.append("Take multiple shots and select the sharpest one")
        technical.append("Use autofocus or manual focus to ensure land area is in focus")
        technical.append("Use faster shutter speed to reduce motion blur")

    if brightness.status is MetricStatus.POOR:
        if brightness.score < dark_below:
            immediate.append("Move to a brighter location or wait for better lighting")
            technical.append("Increase ISO or use exposure compensation")
            environmental.append("Take photos during daylight hours (10 AM - 4 PM)")
        else:
            immediate.append("Move to shade or wait for softer lighting")
            technical.append("Reduce exposure or use exposure compensation")
            environmental.append("Avoid taking photos in direct harsh sunlight")

    if contrast.status in weak:
        environmental.append("Take photos during golden hour (early morning or late afternoon)")
        environmental.append("Avoid overcast conditions when possible")
        technical.append("Adjust contrast settings in camera if available")

    if resolution.status in weak:
        immediate.append("Get closer to the land area while keeping entire area in frame")
        technical.append("Use highest resolution setting on your camera/phone")
        technical.append("Ensure camera lens is clean")

    if color_balance.status in weak:
        technical.append("Adjust white balance setting to match lighting conditions")
        environmental.append("Take photos in natural daylight when possible")
        environmental.append("Avoid mixed lighting sources (indoor + outdoor)")

    if noise.status in weak:
        technical.append("Use lower ISO settings")
        technical.append("Ensure adequate lighting to avoid high ISO")
        environmental.append("Take photos in well-lit conditions")

    if not immediate:
        immediate.append("Image quality is good, continue with current technique")

    return ImprovementSuggestions(tuple(immediate), tuple(technical), tuple(environmental))


def _failed_assessment() -> QualityAssessment:
    def zero(feedback: str) -> MetricAssessment:
        return MetricAssessment(0.0, MetricStatus.POOR, feedback)

    return QualityAssessment(
        overall_score=0.0,
        issues=(
            QualityIssue(
                IssueType.RESOLUTION,
                Severity.HIGH,
                "Unable to analyze image quality",
                "Please upload a valid image file",
                1.0,
            ),
        ),
        usable_for_analysis=False,
        recommended_actions=(
            "Upload a valid image file in supported format (JPEG, PNG, WebP, TIFF)",
        ),
        sharpness=zero("Cannot assess sharpness"),
        brightness=zero("Cannot assess brightness"),
        contrast=zero("Cannot assess contrast"),
        resolution=zero("Invalid image file"),
        color_balance=zero("Cannot assess color balance"),
        noise=zero("Cannot assess noise levels"),
        improvement_suggestions=ImprovementSuggestions(
            immediate=("Upload a valid image file",),
            technical=("Check camera settings and file format",),
            environmental=("Ensure proper lighting and positioning",),
        ),
    )
