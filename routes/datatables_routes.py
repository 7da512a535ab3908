"""
Datatables JSON routes.

Clients post datatables parameters (GET query string, form body or JSON)
and receive ``{draw, recordsTotal, recordsFiltered, data}``.
"""
from flask import Blueprint

from helpers.api_helpers import datatables_endpoint
from helpers.request_helpers import collect_request_params
from logging_helper import LoggingHelper, LogType

# Get logger instance
logger = LoggingHelper.get_logger(LogType.MAIN)

bp = Blueprint('datatables', __name__)

# Service reference (set by app.py)
service = None


def init_datatables_routes(datatables_service):
    """Initialize datatables routes with the service."""
    global service
    service = datatables_service


@bp.route('/datatables/<table_key>', methods=['GET', 'POST'])
@datatables_endpoint('Failed to render table')
def render_table(datatables_service, table_key):
    """Render one page of a registered table in the configured mode."""
    return datatables_service.process_registered(table_key, collect_request_params())


@bp.route('/datatables/<table_key>/compare', methods=['GET'])
@datatables_endpoint('Failed to compare table output')
def compare_table(datatables_service, table_key):
    """Run legacy and pipeline for a registered table and return the diff."""
    result = datatables_service.process_registered(table_key, collect_request_params(), compare=True)
    logger.debug(f"Hybrid diff for {table_key}: {result['diff'].get('note', 'differences found')}")
    return {'table': table_key, 'diff': result['diff'], 'legacy_result': result['legacy_result']}
