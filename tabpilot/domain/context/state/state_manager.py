from typing import Dict, Any, Optional
import copy
from datetime import datetime, timezone

from .workflow_variables import WorkflowVariables


class StateManager:
    """Keeps exported workflow variables between runs, keyed by workflow id.

    Stands in for the external key-value persistence layer: only the flat
    variable map is stored, never loop state.
    """

    def __init__(self):
        self.states: Dict[str, Dict[str, Any]] = {}

    def save_variables(self, workflow_id: str, variables: WorkflowVariables):
        """Persist the exported variable map of a workflow"""

        self.states[workflow_id] = {
            "workflow_id": workflow_id,
            "variables": copy.deepcopy(variables.export()),
            "last_updated": datetime.now(timezone.utc).isoformat()
        }

    def restore_variables(self, workflow_id: str, variables: Optional[WorkflowVariables] = None) -> WorkflowVariables:
        """Load a stored variable map into a (new) WorkflowVariables instance"""

        variables = variables or WorkflowVariables()
        state = self.states.get(workflow_id)
        if state:
            variables.import_variables(copy.deepcopy(state["variables"]))
        return variables

    def get_state(self, workflow_id: str) -> Optional[Dict[str, Any]]:
        return self.states.get(workflow_id)

    def clear_state(self, workflow_id: str):
        self.states.pop(workflow_id, None)
