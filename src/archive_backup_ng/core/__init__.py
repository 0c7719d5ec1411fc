"""Job orchestration: dependency ordering, the job pipeline and run aggregation.

Import the submodules directly; this package stays import-light because the
providers depend on core.models.
"""
