"""
Modeling layer: splitting, recipes, model specifications, workflows and tuning.

Every heavy operation is delegated to scikit-learn; this layer supplies the
vocabulary (recipes, workflows, resamples) that ties the pieces together.
"""
