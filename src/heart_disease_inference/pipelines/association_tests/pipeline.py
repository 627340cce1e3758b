from kedro.pipeline import Pipeline, node, pipeline

from .nodes import run_association_tests


def create_pipeline(**kwargs) -> Pipeline:
    return pipeline(
        [
            node(
                func=run_association_tests,
                inputs=[
                    "processed.ds_heart_disease",
                    "params:target_col",
                    "params:association_tests",
                ],
                outputs="association_tests.test_results",
                name="run_association_tests_node",
            ),
        ]
    )
