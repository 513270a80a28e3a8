from app import app
from models import db, User
from services import habit_service
from werkzeug.security import generate_password_hash
from datetime import date, timedelta

def create_test_account():
    with app.app_context():
        # 1. Create John
        john = User.query.filter_by(username='john').first()
        if not john:
            john = User(
                username='john',
                name='John',
                password_hash=generate_password_hash('password123', method='scrypt')
            )
            db.session.add(john)
            db.session.commit()
            print("User 'john' created.")
        else:
            print("User 'john' already exists.")

        if habit_service.get_user_habits(john.id):
            print("Habits already populated.")
            return

        today = date.today()

        # 2. A good habit done every day for the last 10 days
        print("Adding 'Read 20 pages' with a 10 day streak...")
        read = habit_service.create_habit(john.id, 'Read 20 pages', is_good=True,
                                          start_date=today - timedelta(days=30))
        for i in range(10):
            habit_service.set_completion(read.id, today - timedelta(days=i), True)

        # 3. A bad habit avoided on most days, slipped 4 days ago
        print("Adding 'No sugar' with a slip 4 days ago...")
        sugar = habit_service.create_habit(john.id, 'No sugar', description='Skip desserts',
                                           is_good=False, start_date=today - timedelta(days=14))
        for i in range(14):
            habit_service.set_completion(sugar.id, today - timedelta(days=i), i == 4)

        print("Test data populated successfully.")

if __name__ == "__main__":
    create_test_account()
