from kedro.pipeline import Pipeline, node, pipeline

from .nodes import plot_predictor_distributions


def create_pipeline(**kwargs) -> Pipeline:
    return pipeline(
        [
            node(
                func=plot_predictor_distributions,
                inputs=["processed.ds_heart_disease", "params:visualization"],
                outputs="visualization.predictor_charts",
                name="plot_predictor_distributions_node",
            ),
        ]
    )
