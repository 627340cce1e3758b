from kedro.pipeline import Pipeline, node, pipeline

from .nodes import evaluate_predictions


def create_pipeline(**kwargs) -> Pipeline:
    return pipeline(
        [
            node(
                func=evaluate_predictions,
                inputs=[
                    "logistic_regression.predictions",
                    "params:model_evaluation",
                ],
                outputs=[
                    "model_evaluation.metrics",
                    "model_evaluation.metrics_df",
                    "model_evaluation.confusion_matrix",
                ],
                name="evaluate_predictions_node",
            ),
        ]
    )
