"""Post-estimation gates that decide how an answer is presented."""
