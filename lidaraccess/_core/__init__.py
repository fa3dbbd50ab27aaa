"""Internal building blocks shared by the search clients."""
