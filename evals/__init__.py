"""
Evaluation suite -- code-graded tasks for the scheduler, preferences, agents and collaboration.

Run evals: pytest evals/ -v
"""
