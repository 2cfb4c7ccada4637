# Shared domain services used by more than one component
