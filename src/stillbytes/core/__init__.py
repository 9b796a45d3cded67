"""Edit model, history and rendering engine."""
