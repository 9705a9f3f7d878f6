"""
The `packaging` sub-package contains modules related to the construction of
the build-context archive handed to a container builder.

This includes:
- Assembling the deterministic, fixed-order tar archive.
- Collecting the configured event handler scripts concurrently.
- Orchestrating the whole build, from configuration to built image.
"""
