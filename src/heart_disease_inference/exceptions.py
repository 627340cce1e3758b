"""Error taxonomy shared by every pipeline.

Each stage fails fast with one of these; nothing is recovered locally.
"""


class HeartDiseaseAnalysisError(Exception):
    """Base class for all analysis errors."""


class LoadError(HeartDiseaseAnalysisError):
    """The input table is missing, unreadable or malformed."""


class UndefinedTestError(HeartDiseaseAnalysisError):
    """The association test has no meaningful statistic for this input."""


class ModelFitError(HeartDiseaseAnalysisError):
    """The logistic regression could not be estimated."""


class NonConvergenceError(ModelFitError):
    """The likelihood optimization did not converge within its iteration budget."""


class SeparationError(ModelFitError):
    """A predictor perfectly separates the outcome; coefficients diverge."""


class ValidationError(HeartDiseaseAnalysisError):
    """A model or model input is malformed."""


class SchemaMismatchError(HeartDiseaseAnalysisError):
    """A prediction record does not match the schema seen at fit time."""


class InputLengthMismatchError(HeartDiseaseAnalysisError):
    """Label and prediction sequences differ in length."""


class UndefinedAUCError(HeartDiseaseAnalysisError):
    """AUC is undefined because the true labels hold a single class."""


class SelfComparisonError(HeartDiseaseAnalysisError):
    """Predicted labels were compared against themselves instead of ground truth."""
