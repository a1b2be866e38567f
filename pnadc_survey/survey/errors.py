"""
Exceptions raised while estimating from a survey design.

**Conceptual**: Estimation can fail for reasons that have nothing to do with
malformed input files (those raise SchemaValidationError at load time):
  - The domain you asked about contains nobody.
  - An estimator needs bookkeeping the design does not carry yet.
  - The sample structure makes the variance formula undefined.

A common base class lets callers catch "this estimate can't be produced"
without catching programming errors.
"""


class SurveyEstimationError(Exception):
    """Base class for estimation failures."""
    pass


class EmptySubsetError(SurveyEstimationError):
    """
    Raised when a domain (subset) contains no records.

    **Conceptual**: "No data" is not the same as "zero". A total over an empty
    domain is not 0 people; it is a question the sample cannot answer.
    """
    pass


class DesignNotPreparedError(SurveyEstimationError):
    """Raised when an inequality estimator receives a design that was not passed through prepare_for_inequality."""
    pass


class LonelyPsuError(SurveyEstimationError):
    """
    Raised when a stratum has a single PSU and the policy is "fail".

    Switch the design's lonely_psu policy to "certainty" or "skip"
    (or set PNADC_LONELY_PSU) to estimate anyway.
    """
    pass
