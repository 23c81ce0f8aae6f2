from pdfbatch.extraction.exceptions import ExtractionError, ExtractionErrorKind
from pdfbatch.processor.error_classifier import classify_failure
from pdfbatch.processor.exceptions import FileReadError


class TestClassifyFailure:
    def test_transient_extraction_is_retryable(self) -> None:
        failure = classify_failure(
            ExtractionError("503", ExtractionErrorKind.TRANSIENT)
        )
        assert failure.code == "transient"
        assert failure.retryable
        assert "temporarily unavailable" in failure.message

    def test_quota_is_retryable(self) -> None:
        failure = classify_failure(
            ExtractionError("429", ExtractionErrorKind.QUOTA_EXCEEDED)
        )
        assert failure.code == "quota_exceeded"
        assert failure.retryable

    def test_invalid_input_is_not_retryable(self) -> None:
        failure = classify_failure(
            ExtractionError("bad", ExtractionErrorKind.INVALID_INPUT)
        )
        assert failure.code == "invalid_input"
        assert not failure.retryable

    def test_unreadable_file_is_invalid_input(self) -> None:
        failure = classify_failure(FileReadError("gone"))
        assert failure.code == "invalid_input"

    def test_anything_else_is_unknown(self) -> None:
        failure = classify_failure(RuntimeError("boom"))
        assert failure.code == "unknown"
        assert "boom" not in failure.message
