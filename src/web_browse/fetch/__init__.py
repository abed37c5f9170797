"""Page fetching: through a live browser context or over plain HTTP."""
