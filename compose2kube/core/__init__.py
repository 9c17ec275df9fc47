"""Pipeline core: run options, diagnostics, contracts and the runner."""
