"""Knowledge-base tree, selection sync and document import for Spark Chat."""
