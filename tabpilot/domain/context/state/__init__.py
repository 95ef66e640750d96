# State = everything a tool chain needs to continue at a given step.

# Named variables set by the user, extracted from pages or computed by steps

# The loop stack: which list is being iterated and at which index

# Branch conditions, evaluated over variable values only

# One WorkflowVariables instance per running chain; only the flat variable
# map survives between runs.
