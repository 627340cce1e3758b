from kedro.pipeline import Pipeline, node, pipeline

from .nodes import (
    compute_odds_ratios,
    predict_new_cases,
    predict_outcomes,
    summarize_model_fit,
    train_logit_model,
)


def create_pipeline(**kwargs) -> Pipeline:
    return pipeline(
        [
            node(
                func=train_logit_model,
                inputs=[
                    "processed.ds_heart_disease",
                    "params:target_col",
                    "params:logistic_regression",
                ],
                outputs="logistic_regression.model",
                name="train_logit_model_node",
            ),
            node(
                func=summarize_model_fit,
                inputs="logistic_regression.model",
                outputs="logistic_regression.model_fit_summary",
                name="summarize_model_fit_node",
            ),
            node(
                func=compute_odds_ratios,
                inputs=["logistic_regression.model", "params:logistic_regression.z"],
                outputs="logistic_regression.odds_ratios",
                name="compute_odds_ratios_node",
            ),
            node(
                func=predict_outcomes,
                inputs=[
                    "logistic_regression.model",
                    "processed.ds_heart_disease",
                    "params:threshold",
                ],
                outputs="logistic_regression.predictions",
                name="predict_outcomes_node",
            ),
            node(
                func=predict_new_cases,
                inputs=[
                    "logistic_regression.model",
                    "params:logistic_regression.what_if_cases",
                    "params:threshold",
                ],
                outputs="logistic_regression.what_if_predictions",
                name="predict_new_cases_node",
            ),
        ]
    )
