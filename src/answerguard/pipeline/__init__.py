"""End-to-end accuracy pipeline, its presets and the YAML policy loader."""
