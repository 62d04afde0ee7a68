from models import CategoryType

# Seeded for every newly provisioned user: 30 expense, 8 income, 1 catch-all.
DEFAULT_CATEGORIES: list[dict[str, object]] = [
    # Housing
    {"name": "Rent/Mortgage", "type": CategoryType.expense, "color": "#6366f1", "icon": "🏠"},
    {"name": "Utilities", "type": CategoryType.expense, "color": "#f59e0b", "icon": "💡"},
    {"name": "Internet & Phone", "type": CategoryType.expense, "color": "#3b82f6", "icon": "📱"},
    {"name": "Home Insurance", "type": CategoryType.expense, "color": "#6d28d9", "icon": "🛡️"},
    {"name": "Home Maintenance", "type": CategoryType.expense, "color": "#f43f5e", "icon": "🔧"},
    {"name": "Property Tax", "type": CategoryType.expense, "color": "#4f46e5", "icon": "🏛️"},
    # Transportation
    {"name": "Car Payment", "type": CategoryType.expense, "color": "#dc2626", "icon": "🚗"},
    {"name": "Gas/Fuel", "type": CategoryType.expense, "color": "#f87171", "icon": "⛽"},
    {"name": "Car Insurance", "type": CategoryType.expense, "color": "#ef4444", "icon": "📋"},
    {"name": "Public Transit", "type": CategoryType.expense, "color": "#10b981", "icon": "🚇"},
    {"name": "Car Maintenance", "type": CategoryType.expense, "color": "#fb923c", "icon": "🔩"},
    # Food
    {"name": "Groceries", "type": CategoryType.expense, "color": "#10b981", "icon": "🛒"},
    {"name": "Restaurants", "type": CategoryType.expense, "color": "#14b8a6", "icon": "🍽️"},
    {"name": "Coffee & Snacks", "type": CategoryType.expense, "color": "#06b6d4", "icon": "☕"},
    {"name": "Food Delivery", "type": CategoryType.expense, "color": "#0891b2", "icon": "🚚"},
    # Healthcare
    {"name": "Health Insurance", "type": CategoryType.expense, "color": "#ef4444", "icon": "🏥"},
    {"name": "Medical & Dental", "type": CategoryType.expense, "color": "#dc2626", "icon": "🩺"},
    {"name": "Pharmacy", "type": CategoryType.expense, "color": "#b91c1c", "icon": "💊"},
    {"name": "Fitness & Wellness", "type": CategoryType.expense, "color": "#fca5a5", "icon": "💪"},
    # Personal
    {"name": "Clothing", "type": CategoryType.expense, "color": "#f97316", "icon": "👕"},
    {"name": "Personal Care", "type": CategoryType.expense, "color": "#a855f7", "icon": "💅"},
    {"name": "Household Items", "type": CategoryType.expense, "color": "#fb923c", "icon": "🧺"},
    {"name": "Gifts", "type": CategoryType.expense, "color": "#c026d3", "icon": "🎁"},
    # Entertainment
    {"name": "Entertainment", "type": CategoryType.expense, "color": "#ec4899", "icon": "🎬"},
    {"name": "Subscriptions", "type": CategoryType.expense, "color": "#8b5cf6", "icon": "📺"},
    {"name": "Hobbies", "type": CategoryType.expense, "color": "#9f1239", "icon": "🎨"},
    # Financial
    {"name": "Loan Payments", "type": CategoryType.expense, "color": "#991b1b", "icon": "💰"},
    {"name": "Credit Card Payment", "type": CategoryType.expense, "color": "#7f1d1d", "icon": "💳"},
    {"name": "Savings Transfer", "type": CategoryType.expense, "color": "#059669", "icon": "🏦"},
    {"name": "Investments", "type": CategoryType.expense, "color": "#0891b2", "icon": "📈"},
    # Income
    {"name": "Salary", "type": CategoryType.income, "color": "#10b981", "icon": "💰"},
    {"name": "Freelance/Contract", "type": CategoryType.income, "color": "#3b82f6", "icon": "💼"},
    {"name": "Business Income", "type": CategoryType.income, "color": "#8b5cf6", "icon": "🏢"},
    {"name": "Investment Returns", "type": CategoryType.income, "color": "#f59e0b", "icon": "📈"},
    {"name": "Rental Income", "type": CategoryType.income, "color": "#f97316", "icon": "🏠"},
    {"name": "Tax Refund", "type": CategoryType.income, "color": "#6366f1", "icon": "📋"},
    {"name": "Gifts Received", "type": CategoryType.income, "color": "#ec4899", "icon": "🎁"},
    {"name": "Other Income", "type": CategoryType.income, "color": "#64748b", "icon": "💵"},
    # Catch-all
    {"name": "Miscellaneous", "type": CategoryType.expense, "color": "#64748b", "icon": "📦"},
]
