"""Project-wide constants shared by workspace, controller and tests."""

from __future__ import annotations

# Archive extension of artifacts produced by the builder and kept in the store
ARTIFACT_EXT = "tar.gz"

# Manifest file the builder looks for at the root of a source tree
MANIFEST_FILE = "elba.toml"

# Index repository layout
README_FILE = "README.md"
README_TEMPLATE_FILE = "README.TEMPLATE"
README_PLACEHOLDER = "{#package-list#}"

# Separator between the original comment body and the bot report
REPORT_SEPARATOR = "- - - - - - - - - - -"

# URL schemes accepted for /publish sources by default
SOURCE_SCHEMES = ("https", "http", "git", "ssh")
