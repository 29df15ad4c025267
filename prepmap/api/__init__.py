"""HTTP surface over the query facade."""
