"""Graph engine, nodes, routing and stream adaptation for the athlete support agent."""
