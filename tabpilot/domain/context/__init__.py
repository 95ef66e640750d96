# This module handles workflow context

# +---------------------+
# |      State          |   (Per run, mutable, workflow-focused)
# |---------------------|
# | Named variables     |
# | Loop stack          |
# | Conditions          |
# +---------------------+
#         |
#         v   export / import
# +---------------------+
# |   StateManager      |   (Flat name -> value map per workflow id)
# +---------------------+
#
# Page and tab context live in domain.session; this package only carries
# what a tool chain threads from one step to the next.
