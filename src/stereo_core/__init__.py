"""stereo-core - geometric vision core for stereo matching and triangulation."""

__version__ = "0.1.0"

# Re-export main classes for convenient imports
from .errors import (
    DegenerateGeometryError,
    EmptyInputError,
    InvalidParameterError,
    LengthMismatchError,
    SizeMismatchError,
    UnknownProfileError,
    UnsupportedFormatError,
    VisionError,
)
from .pose import SE3
from .camera import (
    CameraIntrinsics,
    DistortionCoeffs,
    build_intrinsics,
    correct_distortion,
    default_intrinsics,
    flip_image,
    pixel_to_ray,
)
from .correlation import CorrelationResult, cross_correlation
from .features import (
    Dispersion,
    Feature,
    FeatureList,
    compute_main_orientation,
    delete_repeated,
    draw_features,
    get_dispersion,
    row_checking,
)
from .matching import (
    DistanceMetric,
    MatchedFeatureList,
    MatchedPair,
    MatchingOptions,
    descriptor_distances,
    match_features,
    match_features_nn,
)
from .landmarks import Landmark, LandmarkMap
from .triangulation import (
    StereoSystemParams,
    TriangulationResult,
    triangulate_feature_lists,
    triangulate_matches,
    triangulate_point,
)
from .bearing_range import (
    BearingRangeMeasurement,
    BearingRangeObservation,
    BearingRangeSource,
    StereoImagesObservation,
    VisualLandmarksObservation,
    landmarks_to_bearing_range,
    matches_to_bearing_range,
    stereo_obs_to_bearing_range,
    to_bearing_range,
)
from .metrics import MatchingPair3D, clouds_to_matched_list, compute_msd

__all__ = [
    "__version__",
    # Errors
    "VisionError",
    "InvalidParameterError",
    "SizeMismatchError",
    "LengthMismatchError",
    "UnsupportedFormatError",
    "UnknownProfileError",
    "EmptyInputError",
    "DegenerateGeometryError",
    # Pose
    "SE3",
    # Camera
    "CameraIntrinsics",
    "DistortionCoeffs",
    "build_intrinsics",
    "default_intrinsics",
    "pixel_to_ray",
    "correct_distortion",
    "flip_image",
    # Correlation
    "CorrelationResult",
    "cross_correlation",
    # Features
    "Feature",
    "FeatureList",
    "Dispersion",
    "delete_repeated",
    "get_dispersion",
    "row_checking",
    "draw_features",
    "compute_main_orientation",
    # Matching
    "DistanceMetric",
    "MatchingOptions",
    "MatchedPair",
    "MatchedFeatureList",
    "descriptor_distances",
    "match_features",
    "match_features_nn",
    # Landmarks / triangulation
    "Landmark",
    "LandmarkMap",
    "StereoSystemParams",
    "TriangulationResult",
    "triangulate_point",
    "triangulate_matches",
    "triangulate_feature_lists",
    # Bearing-range
    "BearingRangeSource",
    "BearingRangeMeasurement",
    "BearingRangeObservation",
    "StereoImagesObservation",
    "VisualLandmarksObservation",
    "matches_to_bearing_range",
    "stereo_obs_to_bearing_range",
    "landmarks_to_bearing_range",
    "to_bearing_range",
    # Metrics
    "MatchingPair3D",
    "compute_msd",
    "clouds_to_matched_list",
]
