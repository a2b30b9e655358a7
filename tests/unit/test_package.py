"""Smoke tests for idiamant2mqtt package structure.

Test Techniques Used:
- Specification-based: Verify package imports and version metadata exist.
"""

import idiamant2mqtt


class TestPackageStructure:
    """Verify the idiamant2mqtt package is properly installed and importable."""

    def test_package_importable(self) -> None:
        """Package can be imported without error.

        Technique: Specification-based — verifying the package contract.
        """
        assert idiamant2mqtt is not None

    def test_version_is_string(self) -> None:
        """Package exposes a version string.

        Technique: Specification-based — verifying version metadata contract.
        """
        assert isinstance(idiamant2mqtt.__version__, str)
        assert len(idiamant2mqtt.__version__) > 0
