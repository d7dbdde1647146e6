"""Built-in experiment definitions and the curated tool affinity graph."""

DEFAULT_EXPERIMENTS = [
    {
        "experiment_id": "homepage-cta",
        "name": "Homepage CTA Button Text",
        "description": "Test different call-to-action button texts on the homepage",
        "enabled": True,
        "variants": [
            {"variant_id": "control", "name": "Control", "weight": 0.5,
             "description": "Original button text"},
            {"variant_id": "variant-a", "name": "Variant A - Action Focused", "weight": 0.5,
             "description": "More action-oriented button text"},
        ],
    },
    {
        "experiment_id": "calculator-layout",
        "name": "Calculator Layout",
        "description": "Test different calculator page layouts",
        "enabled": True,
        "variants": [
            {"variant_id": "control", "name": "Control - Current Layout", "weight": 0.5,
             "description": "Current sidebar layout"},
            {"variant_id": "variant-a", "name": "Variant A - Stacked Layout", "weight": 0.5,
             "description": "Stacked input/results layout"},
        ],
    },
    {
        "experiment_id": "color-scheme",
        "name": "Primary Color Scheme",
        "description": "Test different color schemes for the entire site",
        # enable when the themes ship
        "enabled": False,
        "variants": [
            {"variant_id": "control", "name": "Control - Blue/Purple", "weight": 0.33,
             "description": "Current blue and purple theme"},
            {"variant_id": "variant-a", "name": "Variant A - Green/Teal", "weight": 0.33,
             "description": "Green and teal theme"},
            {"variant_id": "variant-b", "name": "Variant B - Orange/Red", "weight": 0.34,
             "description": "Warm orange and red theme"},
        ],
    },
    {
        "experiment_id": "ad-placement",
        "name": "Ad Placement",
        "description": "Test different ad placements on calculator pages",
        "enabled": True,
        "variants": [
            {"variant_id": "control", "name": "Control - Current Placement", "weight": 0.5,
             "description": "Current ad positions"},
            {"variant_id": "variant-a", "name": "Variant A - Reduced Ads", "weight": 0.5,
             "description": "Fewer, more strategic ad placements"},
        ],
    },
    {
        "experiment_id": "result-presentation",
        "name": "Result Presentation Style",
        "description": "Test different ways to present calculator results",
        "enabled": True,
        "variants": [
            {"variant_id": "control", "name": "Control - Current Style", "weight": 0.5,
             "description": "Current result display"},
            {"variant_id": "variant-a", "name": "Variant A - Highlighted Results", "weight": 0.5,
             "description": "More prominent result highlighting"},
        ],
    },
]

# source tool -> [(target tool, reason)], strongest relation first
DEFAULT_RELATIONS = {
    "/tip-calculator": [
        ("/split-bill-calculator", "Split the total with your group"),
        ("/discount-calculator", "Calculate happy hour discounts"),
        ("/unit-converter", "Convert recipe measurements for cooking"),
    ],
    "/loan-calculator": [
        ("/discount-calculator", "Calculate down payment savings"),
        ("/age-calculator", "Plan for retirement timing"),
        ("/bmi-calculator", "Health planning for your future"),
    ],
    "/pregnancy-calculator": [
        ("/bmi-calculator", "Track healthy weight during pregnancy"),
        ("/age-calculator", "Calculate baby milestones and age"),
        ("/unit-converter", "Convert baby weight and measurements"),
    ],
    "/bmi-calculator": [
        ("/age-calculator", "BMI recommendations vary by age"),
        ("/unit-converter", "Convert weight and height units"),
        ("/pregnancy-calculator", "Track pregnancy weight goals"),
    ],
    "/discount-calculator": [
        ("/tip-calculator", "Calculate tip on discounted price"),
        ("/split-bill-calculator", "Split your savings with others"),
        ("/loan-calculator", "See if savings help with purchases"),
    ],
    "/age-calculator": [
        ("/bmi-calculator", "Health metrics change with age"),
        ("/pregnancy-calculator", "Track pregnancy and baby age"),
        ("/loan-calculator", "Plan loans based on retirement age"),
    ],
    "/split-bill-calculator": [
        ("/tip-calculator", "Add tip before splitting"),
        ("/discount-calculator", "Apply group discounts first"),
        ("/unit-converter", "Split recipe ingredients"),
    ],
    "/unit-converter": [
        ("/bmi-calculator", "Convert height and weight units"),
        ("/pregnancy-calculator", "Convert baby measurements"),
        ("/tip-calculator", "Calculate tips while cooking out"),
    ],
}
