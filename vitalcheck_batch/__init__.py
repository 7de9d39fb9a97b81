"""
vitalcheck_batch -- Scheduled vital-status verification runs.

Pulls the subject list from the census source, verifies each subject
against the population registry and then the civil registry, and records
every phase so an interrupted run resumes where it stopped.  An in-process
scheduler starts runs inside configured time windows and stops them when
the window closes.

Architecture:
    vitalcheck_batch/ is the top-level package.  Nothing in
    vitalcheck_kernel/, vitalcheck_config/ or vitalcheck_services/ imports
    from it (``create_tables`` loads its models lazily).
"""
