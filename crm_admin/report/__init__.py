from crm_admin.report.results_writer import ResultsWriter, make_run_id

__all__ = ["ResultsWriter", "make_run_id"]
